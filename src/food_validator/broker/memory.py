"""In-memory broker store for tests and single-process local runs."""

from __future__ import annotations

import threading
from typing import Any

from ..queue.models import JobRecord
from ..queue.states import JobState


class InMemoryBrokerStore:
    """Lock-guarded implementation of the BrokerStore protocol."""

    def __init__(self, queue_name: str = "food-validation") -> None:
        self.queue_name = queue_name
        self._lock = threading.Lock()
        self._next_id = 0
        # job_id -> {"data": json, "rank": float, "attempt": int, "state": JobState}
        self._jobs: dict[str, dict[str, Any]] = {}
        self._buckets: dict[JobState, dict[str, float]] = {state: {} for state in JobState}
        self.published: list[tuple[str, dict[str, Any]]] = []
        self.closed = False

    def ping(self) -> bool:
        return True

    def next_job_id(self) -> str:
        with self._lock:
            self._next_id += 1
            return str(self._next_id)

    def add_job(self, record: JobRecord, *, score: float, rank: float) -> None:
        with self._lock:
            self._jobs[record.job_id] = {
                "data": record.to_json(),
                "rank": rank,
                "attempt": record.attempts_made,
                "state": record.state,
            }
            self._buckets[record.state][record.job_id] = score

    def get_job(self, job_id: str) -> JobRecord | None:
        with self._lock:
            entry = self._jobs.get(job_id)
            if entry is None:
                return None
            raw, state, attempt = entry["data"], entry["state"], entry["attempt"]
        record = JobRecord.from_json(raw)
        record.state = state
        record.attempts_made = attempt
        return record

    def save_job(self, record: JobRecord) -> None:
        with self._lock:
            entry = self._jobs.get(record.job_id)
            if entry is None:
                raise KeyError(f"Job {record.job_id} does not exist")
            entry["data"] = record.to_json()

    def move_job(
        self,
        record: JobRecord,
        *,
        from_state: JobState,
        expected_attempt: int,
        score: float,
    ) -> bool:
        with self._lock:
            entry = self._jobs.get(record.job_id)
            source = self._buckets[from_state]
            if entry is None or record.job_id not in source:
                return False
            if entry["attempt"] != expected_attempt:
                return False
            del source[record.job_id]
            self._buckets[record.state][record.job_id] = score
            entry["data"] = record.to_json()
            entry["state"] = record.state
            return True

    def claim_next(self, *, now: float) -> tuple[str | None, list[str]]:
        with self._lock:
            delayed = self._buckets[JobState.DELAYED]
            waiting = self._buckets[JobState.WAITING]
            promoted = [job_id for job_id, score in _ordered(delayed) if score <= now]
            for job_id in promoted:
                del delayed[job_id]
                waiting[job_id] = self._jobs[job_id]["rank"]
                self._jobs[job_id]["state"] = JobState.WAITING
            if not waiting:
                return None, promoted
            job_id = _ordered(waiting)[0][0]
            del waiting[job_id]
            self._buckets[JobState.ACTIVE][job_id] = now
            self._jobs[job_id]["attempt"] += 1
            self._jobs[job_id]["state"] = JobState.ACTIVE
            return job_id, promoted

    def job_ids(self, state: JobState) -> list[str]:
        with self._lock:
            return [job_id for job_id, _ in _ordered(self._buckets[state])]

    def job_ids_scored_before(self, state: JobState, *, before: float) -> list[str]:
        with self._lock:
            return [
                job_id for job_id, score in _ordered(self._buckets[state]) if score <= before
            ]

    def count(self, state: JobState) -> int:
        with self._lock:
            return len(self._buckets[state])

    def remove_job(self, job_id: str, state: JobState) -> bool:
        with self._lock:
            removed = self._buckets[state].pop(job_id, None) is not None
            if removed:
                self._jobs.pop(job_id, None)
            return removed

    def publish(self, event: str, message: dict[str, Any]) -> None:
        with self._lock:
            self.published.append((event, dict(message)))

    def close(self) -> None:
        self.closed = True


def _ordered(bucket: dict[str, float]) -> list[tuple[str, float]]:
    # Same ordering as a Redis sorted set: score, then member.
    return sorted(bucket.items(), key=lambda item: (item[1], item[0]))
