from __future__ import annotations

import io
import json
from email.message import Message
from urllib import error, request

import pytest

from food_validator.classification import client as client_module
from food_validator.classification.client import OpenAIVisionClient, build_vision_client
from food_validator.config.settings import Settings
from food_validator.errors import AdapterCallFailed, MalformedModelOutput


class _FakeHTTPResponse:
    def __init__(self, payload: dict[str, object] | str) -> None:
        raw = payload if isinstance(payload, str) else json.dumps(payload)
        self._raw_body = raw.encode("utf-8")

    def read(self) -> bytes:
        return self._raw_body

    def __enter__(self) -> _FakeHTTPResponse:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        _ = (exc_type, exc, tb)
        return False


def _user_content() -> list[dict[str, object]]:
    return [
        {"type": "text", "text": "Please analyze this food image."},
        {"type": "image", "data": b"\x01\x02", "media_type": "image/png"},
    ]


def test_complete_posts_chat_request_and_returns_text(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_urlopen(req: request.Request, timeout: float):
        captured["url"] = req.full_url
        captured["timeout"] = timeout
        captured["auth"] = req.get_header("Authorization")
        captured["body"] = json.loads(req.data.decode("utf-8"))
        return _FakeHTTPResponse({"choices": [{"message": {"content": '{"food_name": "Dal"}'}}]})

    monkeypatch.setattr(client_module.request, "urlopen", fake_urlopen)
    vision = OpenAIVisionClient(api_key="sk-test", model="vision-model", base_url="http://llm.local/v1/")

    reply = vision.complete(system_prompt="Rules.", user_content=_user_content(), timeout_s=7.5)

    assert reply == '{"food_name": "Dal"}'
    assert captured["url"] == "http://llm.local/v1/chat/completions"
    assert captured["timeout"] == 7.5
    assert captured["auth"] == "Bearer sk-test"
    body = captured["body"]
    assert body["model"] == "vision-model"
    assert body["messages"][0] == {"role": "system", "content": "Rules."}
    image_part = body["messages"][1]["content"][1]
    assert image_part["image_url"]["url"] == "data:image/png;base64,AQI="


def test_complete_joins_segmented_content(monkeypatch: pytest.MonkeyPatch) -> None:
    payload = {"choices": [{"message": {"content": [{"text": '{"a": '}, {"text": "1}"}]}}]}
    monkeypatch.setattr(
        client_module.request, "urlopen", lambda req, timeout: _FakeHTTPResponse(payload)
    )
    vision = OpenAIVisionClient(api_key="sk-test")

    assert vision.complete(system_prompt="s", user_content=_user_content(), timeout_s=1) == '{"a": 1}'


def test_rate_limit_becomes_adapter_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_urlopen(req: request.Request, timeout: float):
        raise error.HTTPError(
            req.full_url, 429, "Too Many Requests", Message(), io.BytesIO(b"quota exceeded")
        )

    monkeypatch.setattr(client_module.request, "urlopen", fake_urlopen)
    vision = OpenAIVisionClient(api_key="sk-test")

    with pytest.raises(AdapterCallFailed, match="status 429: quota exceeded"):
        vision.complete(system_prompt="s", user_content=_user_content(), timeout_s=1)


def test_network_errors_become_adapter_failures(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_urlopen(req: request.Request, timeout: float):
        raise error.URLError("connection refused")

    monkeypatch.setattr(client_module.request, "urlopen", fake_urlopen)
    vision = OpenAIVisionClient(api_key="sk-test")

    with pytest.raises(AdapterCallFailed, match="connection refused"):
        vision.complete(system_prompt="s", user_content=_user_content(), timeout_s=1)


def test_non_json_body_is_an_adapter_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        client_module.request, "urlopen", lambda req, timeout: _FakeHTTPResponse("<html>")
    )
    vision = OpenAIVisionClient(api_key="sk-test")

    with pytest.raises(AdapterCallFailed, match="non-JSON"):
        vision.complete(system_prompt="s", user_content=_user_content(), timeout_s=1)


def test_missing_choices_is_malformed_output(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        client_module.request, "urlopen", lambda req, timeout: _FakeHTTPResponse({"choices": []})
    )
    vision = OpenAIVisionClient(api_key="sk-test")

    with pytest.raises(MalformedModelOutput):
        vision.complete(system_prompt="s", user_content=_user_content(), timeout_s=1)


def test_build_vision_client_needs_an_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    assert build_vision_client(Settings(openai_api_key="")) is None

    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
    vision = build_vision_client(Settings(openai_api_key="", llm_model="vision-model"))
    assert isinstance(vision, OpenAIVisionClient)
    assert vision.api_key == "sk-env"
    assert vision.model == "vision-model"
