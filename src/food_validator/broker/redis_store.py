"""Redis-backed broker store.

Beginner terms:
- Sorted set (ZSET): Redis collection ordered by a numeric score; one per job state.
- Hash: Redis key holding named fields; one per job record.
- Lua script: runs atomically inside Redis, so two workers can never claim
  the same job.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import redis
from redis import exceptions as redis_exceptions

from ..config.settings import Settings
from ..errors import BrokerUnavailable
from ..queue.models import JobRecord
from ..queue.states import JobState

logger = logging.getLogger(__name__)

KEY_PREFIX = "food-validator"

# KEYS: delayed, waiting, active. ARGV: now, job hash key prefix.
_CLAIM_SCRIPT = """
local result = {''}
local due = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', ARGV[1])
for _, id in ipairs(due) do
  redis.call('ZREM', KEYS[1], id)
  local rank = redis.call('HGET', ARGV[2] .. id, 'rank')
  redis.call('ZADD', KEYS[2], rank or 0, id)
  redis.call('HSET', ARGV[2] .. id, 'state', 'waiting')
  table.insert(result, id)
end
local popped = redis.call('ZPOPMIN', KEYS[2])
if #popped > 0 then
  local id = popped[1]
  redis.call('ZADD', KEYS[3], ARGV[1], id)
  redis.call('HINCRBY', ARGV[2] .. id, 'attempt', 1)
  redis.call('HSET', ARGV[2] .. id, 'state', 'active')
  result[1] = id
end
return result
"""

# KEYS: from bucket, to bucket, job hash.
# ARGV: job id, expected attempt, score, data, target state.
_MOVE_SCRIPT = """
if not redis.call('ZSCORE', KEYS[1], ARGV[1]) then
  return 0
end
local attempt = redis.call('HGET', KEYS[3], 'attempt')
if tostring(attempt) ~= ARGV[2] then
  return 0
end
redis.call('ZREM', KEYS[1], ARGV[1])
redis.call('ZADD', KEYS[2], ARGV[3], ARGV[1])
redis.call('HSET', KEYS[3], 'data', ARGV[4], 'state', ARGV[5])
return 1
"""


@contextmanager
def _broker_errors() -> Iterator[None]:
    try:
        yield
    except (redis_exceptions.ConnectionError, redis_exceptions.TimeoutError) as exc:
        raise BrokerUnavailable(f"Redis broker unavailable: {exc}") from exc


class RedisBrokerStore:
    """Persist job records and state buckets in Redis."""

    def __init__(self, queue_name: str, client: redis.Redis) -> None:
        if not queue_name:
            raise ValueError("queue_name is required")
        self.queue_name = queue_name
        self._client = client
        self._prefix = f"{KEY_PREFIX}:{queue_name}"
        self._claim = client.register_script(_CLAIM_SCRIPT)
        self._move = client.register_script(_MOVE_SCRIPT)

    @classmethod
    def from_settings(cls, settings: Settings) -> RedisBrokerStore:
        client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            password=settings.redis_password or None,
            db=settings.redis_db,
            socket_timeout=settings.redis_socket_timeout_s,
            socket_connect_timeout=settings.redis_socket_timeout_s,
            decode_responses=True,
        )
        logger.info(
            "broker event=configured host=%s port=%s db=%s queue=%s",
            settings.redis_host,
            settings.redis_port,
            settings.redis_db,
            settings.queue_name,
        )
        return cls(settings.queue_name, client)

    def ping(self) -> bool:
        with _broker_errors():
            return bool(self._client.ping())

    def next_job_id(self) -> str:
        with _broker_errors():
            return str(self._client.incr(self._key("id")))

    def add_job(self, record: JobRecord, *, score: float, rank: float) -> None:
        with _broker_errors():
            pipe = self._client.pipeline(transaction=True)
            pipe.hset(
                self._job_key(record.job_id),
                mapping={
                    "data": record.to_json(),
                    "rank": repr(rank),
                    "attempt": record.attempts_made,
                    "state": record.state.value,
                },
            )
            pipe.zadd(self._bucket(record.state), {record.job_id: score})
            pipe.execute()

    def get_job(self, job_id: str) -> JobRecord | None:
        with _broker_errors():
            raw, state, attempt = self._client.hmget(
                self._job_key(job_id), ["data", "state", "attempt"]
            )
        if raw is None:
            return None
        # The state and attempt fields are owned by the Lua scripts; the JSON
        # body may lag behind them right after a claim.
        record = JobRecord.from_json(raw)
        if state is not None:
            record.state = JobState(state)
        if attempt is not None:
            record.attempts_made = int(attempt)
        return record

    def save_job(self, record: JobRecord) -> None:
        with _broker_errors():
            self._client.hset(self._job_key(record.job_id), "data", record.to_json())

    def move_job(
        self,
        record: JobRecord,
        *,
        from_state: JobState,
        expected_attempt: int,
        score: float,
    ) -> bool:
        with _broker_errors():
            moved = self._move(
                keys=[
                    self._bucket(from_state),
                    self._bucket(record.state),
                    self._job_key(record.job_id),
                ],
                args=[
                    record.job_id,
                    str(expected_attempt),
                    repr(score),
                    record.to_json(),
                    record.state.value,
                ],
            )
        return int(moved) == 1

    def claim_next(self, *, now: float) -> tuple[str | None, list[str]]:
        with _broker_errors():
            reply = self._claim(
                keys=[
                    self._bucket(JobState.DELAYED),
                    self._bucket(JobState.WAITING),
                    self._bucket(JobState.ACTIVE),
                ],
                args=[repr(now), f"{self._prefix}:job:"],
            )
        claimed, *promoted = [str(item) for item in reply]
        return (claimed or None), promoted

    def job_ids(self, state: JobState) -> list[str]:
        with _broker_errors():
            return [str(item) for item in self._client.zrange(self._bucket(state), 0, -1)]

    def job_ids_scored_before(self, state: JobState, *, before: float) -> list[str]:
        with _broker_errors():
            members = self._client.zrangebyscore(self._bucket(state), "-inf", before)
        return [str(item) for item in members]

    def count(self, state: JobState) -> int:
        with _broker_errors():
            return int(self._client.zcard(self._bucket(state)))

    def remove_job(self, job_id: str, state: JobState) -> bool:
        with _broker_errors():
            pipe = self._client.pipeline(transaction=True)
            pipe.zrem(self._bucket(state), job_id)
            pipe.delete(self._job_key(job_id))
            removed, _ = pipe.execute()
        return bool(removed)

    def publish(self, event: str, message: dict[str, Any]) -> None:
        payload = json.dumps({"event": event, **message})
        with _broker_errors():
            self._client.publish(self._key("events"), payload)

    def close(self) -> None:
        self._client.close()

    def _key(self, suffix: str) -> str:
        return f"{self._prefix}:{suffix}"

    def _bucket(self, state: JobState) -> str:
        return self._key(state.value)

    def _job_key(self, job_id: str) -> str:
        return self._key(f"job:{job_id}")
