"""Response bodies for the HTTP gateway (camelCase on the wire)."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..queue.models import JobRecord


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ValidateFoodResponse(CamelModel):
    task_id: str
    status_endpoint: str
    status: str = "queued"
    message: str = "Food validation task queued successfully"


class TaskStatusResponse(CamelModel):
    task_id: str
    status: str
    attempts_made: int
    max_attempts: int
    created_at: str
    processed_at: str | None = None
    finished_at: str | None = None
    # Present once completed.
    result: dict[str, Any] | None = None
    processing_time_ms: float | None = None
    # Final reason once failed; last attempt's reason while retrying.
    error: str | None = None

    @classmethod
    def from_record(cls, record: JobRecord) -> TaskStatusResponse:
        payload = record.result or {}
        return cls(
            task_id=record.job_id,
            status=record.state.value,
            attempts_made=record.attempts_made,
            max_attempts=record.max_attempts,
            created_at=_iso(record.created_at),
            processed_at=_iso(record.started_at) if record.started_at else None,
            finished_at=_iso(record.finished_at) if record.finished_at else None,
            result=payload.get("result") if record.result is not None else None,
            processing_time_ms=payload.get("processing_time_ms"),
            error=record.failed_reason,
        )


class QueueStatusResponse(CamelModel):
    queue: str
    counts: dict[str, int]
    total: int


class JobSummary(CamelModel):
    task_id: str
    status: str
    attempts_made: int
    food_name: str | None = None
    created_at: str
    error: str | None = None


class QueueJobsResponse(CamelModel):
    queue: str
    state: str
    jobs: list[JobSummary]

    @classmethod
    def from_records(cls, queue: str, state: str, records: list[JobRecord]) -> QueueJobsResponse:
        return cls(
            queue=queue,
            state=state,
            jobs=[
                JobSummary(
                    task_id=record.job_id,
                    status=record.state.value,
                    attempts_made=record.attempts_made,
                    food_name=record.data.food_name,
                    created_at=_iso(record.created_at),
                    error=record.failed_reason,
                )
                for record in records
            ],
        )


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=UTC).isoformat()
