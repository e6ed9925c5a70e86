from __future__ import annotations

import threading

from food_validator.broker.redis_store import RedisBrokerStore
from food_validator.queue import BackoffPolicy, FoodValidationTask, JobOptions, JobState, TaskQueue

from ..support import FakeClock


def _task(name: str) -> FoodValidationTask:
    return FoodValidationTask(image_url="https://example.com/food.jpg", food_name=name)


def test_redis_queue_lifecycle(redis_store: RedisBrokerStore) -> None:
    clock = FakeClock()
    queue = TaskQueue(
        redis_store,
        name=redis_store.queue_name,
        backoff=BackoffPolicy(delay_s=2.0),
        clock=clock,
    )
    task_id = queue.enqueue(_task("Dhokla"))
    assert queue.get_job_counts()["waiting"] == 1

    job = queue.claim()
    assert job is not None
    assert job.attempts_made == 1
    assert queue.fail(job, "rate limited") == JobState.DELAYED
    assert queue.claim() is None

    clock.advance(2.0)
    job = queue.claim()
    assert job is not None
    assert job.attempts_made == 2
    assert queue.complete(job, {"result": {"food_name": "Dhokla"}}) is True

    record = queue.require_job(task_id)
    assert record.state == JobState.COMPLETED
    assert record.result == {"result": {"food_name": "Dhokla"}}
    assert queue.get_job_counts() == {
        "waiting": 0,
        "active": 0,
        "completed": 1,
        "failed": 0,
        "delayed": 0,
    }


def test_redis_priority_and_stale_settle(redis_store: RedisBrokerStore) -> None:
    clock = FakeClock()
    queue = TaskQueue(
        redis_store,
        name=redis_store.queue_name,
        backoff=BackoffPolicy(delay_s=0.0),
        job_timeout_s=10.0,
        clock=clock,
    )
    queue.enqueue(_task("bulk"), JobOptions(priority=9))
    urgent = queue.enqueue(_task("urgent"), JobOptions(priority=1))

    first = queue.claim()
    assert first is not None
    assert first.job_id == urgent

    clock.advance(11.0)
    assert queue.recover_stalled() == 1
    assert queue.complete(first, {"result": "late"}) is False


def test_concurrent_claims_never_share_a_job(redis_store: RedisBrokerStore) -> None:
    queue = TaskQueue(redis_store, name=redis_store.queue_name)
    ids = {queue.enqueue(_task(f"food-{index}")) for index in range(20)}
    claimed: list[str] = []
    lock = threading.Lock()

    def claim_all() -> None:
        while True:
            job = queue.claim()
            if job is None:
                return
            with lock:
                claimed.append(job.job_id)

    threads = [threading.Thread(target=claim_all) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert sorted(claimed) == sorted(ids)
    assert len(claimed) == len(set(claimed))
