"""Storage interface the task queue uses to persist job records.

Each state owns one ordered bucket of job ids. The broker keeps every
multi-key change atomic; deciding which change to make is the queue's job.
"""

from __future__ import annotations

from typing import Any, Protocol

from ..queue.models import JobRecord
from ..queue.states import JobState


class BrokerStore(Protocol):
    def ping(self) -> bool: ...

    def next_job_id(self) -> str: ...

    def add_job(self, record: JobRecord, *, score: float, rank: float) -> None:
        """Write a new record and put it in the bucket for `record.state`.

        `rank` is the waiting-bucket score used when a delayed job is promoted.
        """
        ...

    def get_job(self, job_id: str) -> JobRecord | None: ...

    def save_job(self, record: JobRecord) -> None:
        """Overwrite the stored record without touching bucket membership."""
        ...

    def move_job(
        self,
        record: JobRecord,
        *,
        from_state: JobState,
        expected_attempt: int,
        score: float,
    ) -> bool:
        """Compare-and-set move from `from_state` into `record.state`.

        Returns False, changing nothing, when the job is not in `from_state`
        or its stored attempt counter differs from `expected_attempt`.
        """
        ...

    def claim_next(self, *, now: float) -> tuple[str | None, list[str]]:
        """Promote due delayed jobs, then pop the best waiting job into active.

        Returns the claimed id (or None) and the ids promoted to waiting.
        """
        ...

    def job_ids(self, state: JobState) -> list[str]: ...

    def job_ids_scored_before(self, state: JobState, *, before: float) -> list[str]: ...

    def count(self, state: JobState) -> int: ...

    def remove_job(self, job_id: str, state: JobState) -> bool: ...

    def publish(self, event: str, message: dict[str, Any]) -> None: ...

    def close(self) -> None: ...
