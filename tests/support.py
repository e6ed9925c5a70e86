"""Test doubles shared by the unit tests."""

from __future__ import annotations

import json
from typing import Any

# 1x1 transparent PNG.
TINY_PNG_BASE64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)

POTATO_CHIPS_REPLY = {
    "food_name": "Potato Chips",
    "ingredients": ["potato", "oil", "salt"],
    "is_vegetarian": "yes",
    "is_swaminarayan_compliant": "yes",
    "is_jain_compliant": "no",
    "is_vegan_compliant": "yes",
    "is_upvas_compliant": "no",
    "reasons": [
        "Potato is a root vegetable, which Jain rules exclude.",
        "No dairy or animal products are listed.",
        "Regular salt is not permitted during Upvas.",
    ],
}


class FakeClock:
    """Manually advanced clock for backoff and timeout tests."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeVisionClient:
    """Returns scripted replies in order; an Exception entry is raised instead.

    The last reply repeats once the script runs out.
    """

    def __init__(self, replies: list[str | Exception] | None = None) -> None:
        self.replies = list(replies or [json.dumps(POTATO_CHIPS_REPLY)])
        self.calls: list[dict[str, Any]] = []

    def complete(
        self,
        *,
        system_prompt: str,
        user_content: list[dict[str, Any]],
        timeout_s: float,
    ) -> str:
        self.calls.append(
            {"system_prompt": system_prompt, "user_content": user_content, "timeout_s": timeout_s}
        )
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply
