"""Pydantic models for queued tasks and their job records.

Beginner terms used in this file:
- Payload: the task data a worker needs to do its job.
- Job record: the queue's bookkeeping entry wrapped around one payload.
- Backoff: how long a failed job waits before its next attempt.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any, Literal

from pydantic import BaseModel, Field, field_serializer, field_validator

from .states import JobState

# Keeps priority * 2**32 + sequence below 2**53 (exact in a Redis score).
MAX_PRIORITY = 2**21 - 1


class FoodValidationTask(BaseModel):
    """Payload for one food image classification."""

    # Exactly one image reference is expected; see ClassificationAdapter for precedence.
    image_file: bytes | None = None
    image_url: str | None = None
    image_base64: str | None = None
    media_type: str | None = None
    food_name: str | None = None
    ingredients: str | None = None

    @field_validator("image_file", mode="before")
    @classmethod
    def _decode_image_file(cls, value: Any) -> Any:
        # Broker records carry raw bytes as base64 text.
        if isinstance(value, str):
            try:
                return base64.b64decode(value, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise ValueError("image_file must be bytes or base64 text") from exc
        return value

    @field_serializer("image_file", when_used="json")
    def _encode_image_file(self, value: bytes | None) -> str | None:
        if value is None:
            return None
        return base64.b64encode(value).decode("ascii")

    def has_image(self) -> bool:
        return bool(self.image_file or self.image_url or self.image_base64)

    def describe(self) -> dict[str, Any]:
        """Log-friendly summary that never includes image data."""
        return {
            "has_file": bool(self.image_file),
            "has_url": bool(self.image_url),
            "has_base64": bool(self.image_base64),
            "file_size": len(self.image_file) if self.image_file else 0,
            "base64_length": len(self.image_base64) if self.image_base64 else 0,
            "food_name": self.food_name or "",
        }


class BackoffPolicy(BaseModel):
    type: Literal["exponential", "fixed"] = "exponential"
    delay_s: float = Field(default=2.0, ge=0.0)

    def delay_for(self, attempts_made: int) -> float:
        """Delay before the next attempt after `attempts_made` failed attempts."""
        if self.type == "fixed":
            return self.delay_s
        return self.delay_s * (2 ** max(attempts_made - 1, 0))


class JobOptions(BaseModel):
    """Per-job overrides; unset fields fall back to the queue defaults."""

    # Lower number is served first, as in most job-queue libraries.
    priority: int = Field(default=0, ge=0, le=MAX_PRIORITY)
    delay_s: float = Field(default=0.0, ge=0.0)
    max_attempts: int | None = Field(default=None, ge=1)
    backoff: BackoffPolicy | None = None


class JobRecord(BaseModel):
    """Canonical job record shape stored by brokers and returned by the queue."""

    job_id: str
    name: str
    data: FoodValidationTask
    state: JobState = JobState.WAITING
    priority: int = 0
    delay_s: float = 0.0
    max_attempts: int = 3
    backoff: BackoffPolicy = Field(default_factory=BackoffPolicy)
    attempts_made: int = 0
    # Epoch seconds from the queue clock.
    created_at: float
    ready_at: float | None = None
    started_at: float | None = None
    finished_at: float | None = None
    result: dict[str, Any] | None = None
    failed_reason: str | None = None
    # One entry per failed attempt, oldest first.
    stacktrace: list[str] = Field(default_factory=list)

    @property
    def attempts_left(self) -> int:
        return max(self.max_attempts - self.attempts_made, 0)

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: str | bytes) -> JobRecord:
        return cls.model_validate_json(raw)
