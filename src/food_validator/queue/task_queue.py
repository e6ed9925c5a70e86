"""Named job queue over a broker store.

The queue owns the lifecycle policy (transition table, retry/backoff,
timeouts, retention); the broker only makes each change atomic.

Beginner terms used in this file:
- Claim: a worker taking exclusive ownership of one waiting job.
- Compare-and-set: a write that only happens if the record still looks the
  way the writer last saw it, so a slow worker cannot clobber a retry.
- Listener: a callback notified about state changes (used for logging).
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from ..errors import BrokerUnavailable, JobNotFound
from .models import BackoffPolicy, FoodValidationTask, JobOptions, JobRecord
from .states import JobState, assert_transition, is_terminal

if TYPE_CHECKING:
    from ..broker.base import BrokerStore
    from ..config.settings import Settings

logger = logging.getLogger(__name__)

Listener = Callable[[str, JobRecord], None]

# Waiting-bucket score = priority tier * RANK_TIER + job sequence number.
RANK_TIER = 2**32

EVENTS = ("waiting", "active", "completed", "failed", "delayed")


class TaskQueue:
    """Enqueue, claim, and settle food validation jobs."""

    def __init__(
        self,
        store: BrokerStore,
        *,
        name: str = "food-validation",
        max_attempts: int = 3,
        backoff: BackoffPolicy | None = None,
        job_timeout_s: float = 30 * 60,
        remove_on_complete_s: float = 24 * 60 * 60,
        remove_on_fail_s: float = 7 * 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.store = store
        self.name = name
        self.max_attempts = max_attempts
        self.backoff = backoff or BackoffPolicy()
        self.job_timeout_s = job_timeout_s
        self.remove_on_complete_s = remove_on_complete_s
        self.remove_on_fail_s = remove_on_fail_s
        self.clock = clock
        self._listeners: dict[str, list[Listener]] = {event: [] for event in EVENTS}

    @classmethod
    def from_settings(
        cls,
        store: BrokerStore,
        settings: Settings,
        *,
        clock: Callable[[], float] = time.time,
    ) -> TaskQueue:
        return cls(
            store,
            name=settings.queue_name,
            max_attempts=settings.job_attempts,
            backoff=BackoffPolicy(type=settings.job_backoff_type, delay_s=settings.job_backoff_s),
            job_timeout_s=settings.job_timeout_s,
            remove_on_complete_s=settings.remove_on_complete_s,
            remove_on_fail_s=settings.remove_on_fail_s,
            clock=clock,
        )

    def on(self, event: str, listener: Listener) -> None:
        if event not in self._listeners:
            raise ValueError(f"Unknown queue event: {event}")
        self._listeners[event].append(listener)

    def enqueue(self, payload: FoodValidationTask, options: JobOptions | None = None) -> str:
        """Persist a new job and return its id without waiting for processing."""
        opts = options or JobOptions()
        job_id = self.store.next_job_id()
        now = self.clock()
        delayed = opts.delay_s > 0
        record = JobRecord(
            job_id=job_id,
            name=self.name,
            data=payload,
            state=JobState.DELAYED if delayed else JobState.WAITING,
            priority=opts.priority,
            delay_s=opts.delay_s,
            max_attempts=opts.max_attempts or self.max_attempts,
            backoff=opts.backoff or self.backoff,
            created_at=now,
            ready_at=now + opts.delay_s if delayed else None,
        )
        rank = _rank(record)
        score = record.ready_at if record.ready_at is not None else rank
        self.store.add_job(record, score=score, rank=rank)
        self._emit(record.state.value, record)
        return job_id

    def get_job(self, job_id: str) -> JobRecord | None:
        return self.store.get_job(job_id)

    def require_job(self, job_id: str) -> JobRecord:
        record = self.store.get_job(job_id)
        if record is None:
            raise JobNotFound(job_id)
        return record

    def list_by_state(self, state: JobState) -> list[JobRecord]:
        records: list[JobRecord] = []
        for job_id in self.store.job_ids(state):
            record = self.store.get_job(job_id)
            # Cleanup may delete a job between the two reads.
            if record is not None:
                records.append(record)
        return records

    def get_job_counts(self) -> dict[str, int]:
        return {state.value: self.store.count(state) for state in JobState}

    def claim(self) -> JobRecord | None:
        """Move the next ready job into active and return it, or None if idle."""
        now = self.clock()
        job_id, promoted = self.store.claim_next(now=now)
        for promoted_id in promoted:
            assert_transition(JobState.DELAYED, JobState.WAITING)
            promoted_record = self.store.get_job(promoted_id)
            if promoted_record is not None:
                self._emit(JobState.WAITING.value, promoted_record)
        if job_id is None:
            return None

        record = self.require_job(job_id)
        assert_transition(JobState.WAITING, JobState.ACTIVE)
        record.state = JobState.ACTIVE
        record.started_at = now
        self.store.save_job(record)
        self._emit(JobState.ACTIVE.value, record)
        return record

    def complete(self, job: JobRecord, result: dict[str, Any]) -> bool:
        """Settle an active job as completed. Returns False if the claim went stale."""
        if self._already_settled(job, JobState.COMPLETED):
            return False
        assert_transition(JobState.ACTIVE, JobState.COMPLETED)
        now = self.clock()
        updated = job.model_copy(
            update={
                "state": JobState.COMPLETED,
                "finished_at": now,
                "result": result,
                "failed_reason": None,
            }
        )
        if not self._settle(job, updated, score=now):
            return False
        self._emit(JobState.COMPLETED.value, updated)
        return True

    def fail(self, job: JobRecord, error: BaseException | str) -> JobState | None:
        """Record a failed attempt; retry with backoff or fail permanently.

        Returns the state the job moved to, or None if the claim went stale.
        """
        if self._already_settled(job, JobState.FAILED):
            return None
        reason = _reason(error)
        now = self.clock()
        stacktrace = [*job.stacktrace, reason]
        if job.attempts_left > 0:
            delay = job.backoff.delay_for(job.attempts_made)
            target = JobState.DELAYED if delay > 0 else JobState.WAITING
            updated = job.model_copy(
                update={
                    "state": target,
                    "failed_reason": reason,
                    "stacktrace": stacktrace,
                    "ready_at": now + delay if delay > 0 else None,
                }
            )
            score = updated.ready_at if updated.ready_at is not None else _rank(updated)
        else:
            target = JobState.FAILED
            updated = job.model_copy(
                update={
                    "state": target,
                    "failed_reason": reason,
                    "stacktrace": stacktrace,
                    "finished_at": now,
                }
            )
            score = now

        assert_transition(JobState.ACTIVE, target)
        if not self._settle(job, updated, score=score):
            return None
        self._emit(target.value, updated)
        return target

    def recover_stalled(self) -> int:
        """Fail active jobs that outlived the job timeout (crashed or hung workers)."""
        now = self.clock()
        cutoff = now - self.job_timeout_s
        recovered = 0
        for job_id in self.store.job_ids_scored_before(JobState.ACTIVE, before=cutoff):
            record = self.store.get_job(job_id)
            if record is None or record.state != JobState.ACTIVE:
                continue
            logger.warning(
                "job_event event=timeout job_id=%s attempts_made=%s timeout_s=%s",
                job_id,
                record.attempts_made,
                self.job_timeout_s,
            )
            if self.fail(record, f"job timed out after {int(self.job_timeout_s)}s") is not None:
                recovered += 1
        return recovered

    def clean(self) -> int:
        """Delete finished jobs older than their retention window."""
        now = self.clock()
        removed = 0
        for state, retention_s in (
            (JobState.COMPLETED, self.remove_on_complete_s),
            (JobState.FAILED, self.remove_on_fail_s),
        ):
            for job_id in self.store.job_ids_scored_before(state, before=now - retention_s):
                if self.store.remove_job(job_id, state):
                    removed += 1
        if removed:
            logger.info("queue_clean event=removed queue=%s removed=%s", self.name, removed)
        return removed

    def close(self) -> None:
        self.store.close()

    def _already_settled(self, job: JobRecord, target: JobState) -> bool:
        if not is_terminal(job.state):
            return False
        logger.warning(
            "job_event event=already_settled job_id=%s state=%s target=%s",
            job.job_id,
            job.state.value,
            target.value,
        )
        return True

    def _settle(self, job: JobRecord, updated: JobRecord, *, score: float) -> bool:
        moved = self.store.move_job(
            updated,
            from_state=JobState.ACTIVE,
            expected_attempt=job.attempts_made,
            score=score,
        )
        if not moved:
            logger.warning(
                "job_event event=stale_settle job_id=%s attempt=%s target=%s",
                job.job_id,
                job.attempts_made,
                updated.state.value,
            )
        return moved

    def _emit(self, event: str, record: JobRecord) -> None:
        for listener in self._listeners[event]:
            try:
                listener(event, record)
            except Exception:  # noqa: BLE001
                logger.exception("queue listener failed event=%s job_id=%s", event, record.job_id)
        try:
            self.store.publish(
                event,
                {
                    "job_id": record.job_id,
                    "queue": self.name,
                    "attempts_made": record.attempts_made,
                },
            )
        except BrokerUnavailable as exc:
            logger.warning("queue event publish failed event=%s reason=%s", event, exc)


def attach_logging_listeners(queue: TaskQueue) -> None:
    """Log every queue transition, one line per event."""

    def on_waiting(_: str, job: JobRecord) -> None:
        logger.info("job_event event=waiting job_id=%s", job.job_id)

    def on_active(_: str, job: JobRecord) -> None:
        logger.info(
            "job_event event=active job_id=%s attempt=%s/%s food_name=%s",
            job.job_id,
            job.attempts_made,
            job.max_attempts,
            job.data.food_name or "Unknown food",
        )

    def on_completed(_: str, job: JobRecord) -> None:
        result_size = len(str(job.result)) if job.result is not None else 0
        logger.info("job_event event=completed job_id=%s result_size=%s", job.job_id, result_size)

    def on_delayed(_: str, job: JobRecord) -> None:
        logger.info(
            "job_event event=delayed job_id=%s attempts_made=%s ready_at=%s reason=%s",
            job.job_id,
            job.attempts_made,
            job.ready_at,
            job.failed_reason,
        )

    def on_failed(_: str, job: JobRecord) -> None:
        logger.error(
            "job_event event=failed job_id=%s attempts_made=%s reason=%s",
            job.job_id,
            job.attempts_made,
            job.failed_reason,
        )

    queue.on("waiting", on_waiting)
    queue.on("active", on_active)
    queue.on("completed", on_completed)
    queue.on("delayed", on_delayed)
    queue.on("failed", on_failed)


def _rank(record: JobRecord) -> float:
    try:
        sequence = float(record.job_id)
    except ValueError:
        sequence = record.created_at
    return record.priority * RANK_TIER + sequence


def _reason(error: BaseException | str) -> str:
    if isinstance(error, str):
        return error
    message = str(error)
    return message or type(error).__name__
