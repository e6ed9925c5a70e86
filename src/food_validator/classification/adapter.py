"""Turn a queued task into a multimodal model request and its reply into a verdict.

Beginner terms used in this file:
- System prompt: fixed instructions describing the dietary rules.
- Code fence: the ```json ... ``` wrapper models often put around JSON.
"""

from __future__ import annotations

import json
import logging
import re
import time
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from ..errors import MalformedModelOutput
from ..queue.models import FoodValidationTask, JobRecord
from .client import ContentPart, VisionClient
from .image import normalize_image
from .models import ClassificationResult

logger = logging.getLogger(__name__)

USER_INSTRUCTION = (
    "Please analyze this food image and determine its compliance with various dietary standards."
)

_JSON_FENCE_OPEN = re.compile(r"^```json\s*")
_FENCE_OPEN = re.compile(r"^```\s*")
_FENCE_CLOSE = re.compile(r"\s*```$")


def strip_code_fences(text: str) -> str:
    """Remove one surrounding ```json / ``` fence if present."""
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = _FENCE_CLOSE.sub("", _JSON_FENCE_OPEN.sub("", cleaned))
    elif cleaned.startswith("```"):
        cleaned = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", cleaned))
    return cleaned


def parse_model_reply(text: str) -> ClassificationResult:
    cleaned = strip_code_fences(text)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise MalformedModelOutput(
            f"Failed to parse AI response as JSON: {exc}", raw_text=text
        ) from exc
    if not isinstance(parsed, dict):
        raise MalformedModelOutput("AI response JSON is not an object", raw_text=text)
    try:
        return ClassificationResult.model_validate(parsed)
    except ValidationError as exc:
        raise MalformedModelOutput(
            f"AI response does not match the classification shape: {exc.error_count()} errors",
            raw_text=text,
        ) from exc


def build_instruction_text(task: FoodValidationTask) -> str:
    text = USER_INSTRUCTION
    food_name = task.food_name or ""
    ingredients = task.ingredients or ""
    if food_name or ingredients:
        text += "\n\nAdditional information:\n"
        if food_name:
            text += f"Food name: {food_name}\n"
        if ingredients:
            text += f"Ingredients: {ingredients}\n"
    return text


class ClassificationAdapter:
    """Wrap the external vision model behind a task -> result call."""

    def __init__(
        self,
        client: VisionClient,
        *,
        system_prompt: str,
        timeout_s: float = 120.0,
    ) -> None:
        if not system_prompt:
            raise ValueError("system_prompt is required")
        self.client = client
        self.system_prompt = system_prompt
        self.timeout_s = timeout_s

    def build_user_content(self, task: FoodValidationTask) -> list[ContentPart]:
        image = normalize_image(task)
        return [
            {"type": "text", "text": build_instruction_text(task)},
            {"type": "image", "data": image.data, "media_type": image.media_type},
        ]

    def classify(self, task: FoodValidationTask) -> ClassificationResult:
        user_content = self.build_user_content(task)
        started = time.perf_counter()
        reply = self.client.complete(
            system_prompt=self.system_prompt,
            user_content=user_content,
            timeout_s=self.timeout_s,
        )
        logger.info(
            "classification event=reply_received duration_ms=%s response_length=%s",
            _duration_ms(started),
            len(reply),
        )
        try:
            return parse_model_reply(reply)
        except MalformedModelOutput:
            logger.warning("classification event=parse_failed raw_preview=%r", reply[:200])
            raise

    def process(self, job: JobRecord) -> dict[str, Any]:
        """Classify one claimed job and build its completion payload."""
        started = time.perf_counter()
        logger.info("classification event=start job_id=%s input=%s", job.job_id, job.data.describe())
        result = self.classify(job.data)
        processing_time_ms = _duration_ms(started)
        logger.info(
            "classification event=completed job_id=%s processing_time_ms=%s",
            job.job_id,
            processing_time_ms,
        )
        return {
            "task_id": job.job_id,
            "status": "completed",
            "result": result.model_dump(mode="json"),
            "processing_time_ms": processing_time_ms,
            "completed_at": datetime.now(tz=UTC).isoformat(),
        }


def _duration_ms(started_at: float) -> float:
    return round((time.perf_counter() - started_at) * 1000.0, 2)
