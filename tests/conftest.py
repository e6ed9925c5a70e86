from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from food_validator.api.main import create_app
from food_validator.broker.memory import InMemoryBrokerStore
from food_validator.classification import ClassificationAdapter
from food_validator.config.settings import Settings
from food_validator.queue import BackoffPolicy, TaskQueue
from food_validator.static import StaticResources

from .support import FakeClock, FakeVisionClient


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryBrokerStore:
    return InMemoryBrokerStore()


@pytest.fixture
def task_queue(store: InMemoryBrokerStore, clock: FakeClock) -> TaskQueue:
    return TaskQueue(
        store,
        max_attempts=3,
        backoff=BackoffPolicy(type="exponential", delay_s=2.0),
        job_timeout_s=1800.0,
        clock=clock,
    )


@pytest.fixture
def vision_client() -> FakeVisionClient:
    return FakeVisionClient()


@pytest.fixture
def adapter(vision_client: FakeVisionClient) -> ClassificationAdapter:
    return ClassificationAdapter(vision_client, system_prompt="Dietary rules.", timeout_s=5.0)


@pytest.fixture
def settings() -> Settings:
    return Settings(broker_backend="memory", openai_api_key="test-key")


@pytest.fixture
def resources() -> StaticResources:
    return StaticResources(
        system_prompt="Dietary rules.",
        homepage_html="<html><body>Food Dietary Validator</body></html>",
    )


@pytest.fixture
def client(task_queue: TaskQueue, settings: Settings, resources: StaticResources) -> TestClient:
    app = create_app(queue=task_queue, settings_override=settings, resources=resources)
    return TestClient(app)
