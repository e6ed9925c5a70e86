from __future__ import annotations

import base64
import json
import logging
from typing import Any, Protocol
from urllib import error, request

from ..config.settings import Settings
from ..errors import AdapterCallFailed, MalformedModelOutput

logger = logging.getLogger(__name__)

# Provider-neutral user content parts:
#   {"type": "text", "text": str}
#   {"type": "image", "data": bytes | str (url), "media_type": str}
ContentPart = dict[str, Any]


class VisionClient(Protocol):
    """Interface for one multimodal completion returning free-form text."""

    def complete(
        self,
        *,
        system_prompt: str,
        user_content: list[ContentPart],
        timeout_s: float,
    ) -> str: ...


class OpenAIVisionClient:
    """Small OpenAI-compatible client using the chat completions REST API."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
    ) -> None:
        if not api_key:
            raise ValueError("api_key is required")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")

    def complete(
        self,
        *,
        system_prompt: str,
        user_content: list[ContentPart],
        timeout_s: float,
    ) -> str:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": [_to_openai_part(part) for part in user_content]},
            ],
        }
        response_json = self._request(payload, timeout_s=timeout_s)
        return self._extract_content(response_json)

    def _request(self, payload: dict[str, Any], timeout_s: float) -> dict[str, Any]:
        url = f"{self.base_url}/chat/completions"
        req = request.Request(
            url=url,
            data=json.dumps(payload).encode("utf-8"),
            method="POST",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        try:
            with request.urlopen(req, timeout=timeout_s) as response:
                body = response.read().decode("utf-8")
        except error.HTTPError as exc:
            message = exc.read().decode("utf-8", errors="replace")
            # 429 lands here too; the queue retries it like any transient error.
            raise AdapterCallFailed(
                f"Classification request failed with status {exc.code}: {message[:400]}"
            ) from exc
        except error.URLError as exc:
            raise AdapterCallFailed(f"Classification request failed: {exc.reason}") from exc
        except TimeoutError as exc:
            raise AdapterCallFailed(
                f"Classification request timed out after {timeout_s:.1f}s"
            ) from exc

        try:
            return json.loads(body)
        except json.JSONDecodeError as exc:
            raise AdapterCallFailed("Classification service returned non-JSON response") from exc

    @staticmethod
    def _extract_content(response_json: dict[str, Any]) -> str:
        choices = response_json.get("choices", [])
        if not choices:
            raise MalformedModelOutput(
                "Classification response did not contain choices",
                raw_text=json.dumps(response_json)[:2000],
            )

        message = choices[0].get("message", {})
        content = message.get("content", "")
        if isinstance(content, str) and content:
            return content
        if isinstance(content, list):
            text_segments: list[str] = []
            for item in content:
                if isinstance(item, dict):
                    text = item.get("text")
                    if isinstance(text, str):
                        text_segments.append(text)
            merged = "".join(text_segments).strip()
            if merged:
                return merged
        raise MalformedModelOutput(
            "Classification response content could not be read as text",
            raw_text=json.dumps(message)[:2000],
        )


def _to_openai_part(part: ContentPart) -> dict[str, Any]:
    if part["type"] == "text":
        return {"type": "text", "text": part["text"]}
    data = part["data"]
    if isinstance(data, bytes):
        encoded = base64.b64encode(data).decode("ascii")
        url = f"data:{part['media_type']};base64,{encoded}"
    else:
        url = data
    return {"type": "image_url", "image_url": {"url": url}}


def build_vision_client(settings: Settings) -> VisionClient | None:
    api_key = settings.resolved_openai_api_key()
    if not api_key:
        return None
    return OpenAIVisionClient(
        api_key=api_key,
        model=settings.llm_model,
        base_url=settings.llm_base_url,
    )
