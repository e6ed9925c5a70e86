from __future__ import annotations

import os
import uuid
from collections.abc import Iterator

import pytest
import redis

from food_validator.broker.redis_store import KEY_PREFIX, RedisBrokerStore


@pytest.fixture
def redis_client() -> Iterator[redis.Redis]:
    if os.getenv("RUN_REDIS_INTEGRATION_TESTS") != "1":
        pytest.skip(
            "Set RUN_REDIS_INTEGRATION_TESTS=1 and FOOD_VALIDATOR_REDIS_HOST "
            "to run integration tests against Redis."
        )
    client = redis.Redis(
        host=os.getenv("FOOD_VALIDATOR_REDIS_HOST", "localhost"),
        port=int(os.getenv("FOOD_VALIDATOR_REDIS_PORT", "6379")),
        decode_responses=True,
    )
    try:
        client.ping()
    except redis.exceptions.ConnectionError:
        pytest.skip("Redis is not reachable.")
    yield client
    client.close()


@pytest.fixture
def redis_store(redis_client: redis.Redis) -> Iterator[RedisBrokerStore]:
    queue_name = f"test-{uuid.uuid4().hex[:8]}"
    store = RedisBrokerStore(queue_name, redis_client)
    yield store
    for key in redis_client.scan_iter(f"{KEY_PREFIX}:{queue_name}:*"):
        redis_client.delete(key)
