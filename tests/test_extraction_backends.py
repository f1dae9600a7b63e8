from __future__ import annotations

import base64
from types import SimpleNamespace
from typing import Any, Dict

import pytest
import requests

from loan_reminder.config import ConfigError, Settings
from loan_reminder.extraction import backends
from loan_reminder.extraction.backends import (
    OllamaExtractionService,
    OpenAIExtractionService,
    OpenRouterExtractionService,
    ServiceError,
    build_extraction_service,
    guess_image_mime,
)


PNG_B64 = base64.b64encode(b"\x89PNG\r\n\x1a\n" + b"\x00" * 32).decode("ascii")
JPEG_B64 = base64.b64encode(b"\xff\xd8\xff\xe0" + b"\x00" * 32).decode("ascii")


class _Response:
    def __init__(self, status_code: int, body: Any) -> None:
        self.status_code = status_code
        self._body = body
        self.text = str(body)

    def json(self) -> Any:
        return self._body

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")


def test_guess_image_mime() -> None:
    assert guess_image_mime(PNG_B64) == "image/png"
    assert guess_image_mime(JPEG_B64) == "image/jpeg"
    assert guess_image_mime(f"data:image/jpeg;base64,{JPEG_B64}") == "image/jpeg"
    assert guess_image_mime(base64.b64encode(b"unknown bytes").decode()) == "image/png"
    with pytest.raises(ServiceError):
        guess_image_mime("@@not base64@@")


def test_openrouter_sends_data_url_and_returns_text(monkeypatch) -> None:
    captured: Dict[str, Any] = {}

    def fake_post(url, headers=None, json=None, timeout=None):
        captured.update(url=url, headers=headers, json=json, timeout=timeout)
        return _Response(200, {"choices": [{"message": {"content": '{"books": []}'}}]})

    monkeypatch.setattr(backends.requests, "post", fake_post)
    svc = OpenRouterExtractionService("key", "some/model", max_tokens=2000, timeout_seconds=30)

    assert svc.invoke(JPEG_B64, "prompt") == '{"books": []}'
    assert captured["url"] == OpenRouterExtractionService.ENDPOINT
    assert captured["headers"]["Authorization"] == "Bearer key"
    assert captured["timeout"] == 30
    content = captured["json"]["messages"][0]["content"]
    assert content[0]["image_url"]["url"].startswith("data:image/jpeg;base64,")
    assert content[1] == {"type": "text", "text": "prompt"}
    assert captured["json"]["max_tokens"] == 2000


@pytest.mark.parametrize(
    "response",
    [
        _Response(500, {"error": "boom"}),
        _Response(200, {"choices": []}),
        _Response(200, {"choices": [{"message": {"content": "   "}}]}),
    ],
)
def test_openrouter_failures_raise_service_error(monkeypatch, response) -> None:
    monkeypatch.setattr(backends.requests, "post", lambda *a, **k: response)
    with pytest.raises(ServiceError):
        OpenRouterExtractionService("key", "m").invoke(PNG_B64, "prompt")


def test_openrouter_transport_error(monkeypatch) -> None:
    def fake_post(*_, **__):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(backends.requests, "post", fake_post)
    with pytest.raises(ServiceError):
        OpenRouterExtractionService("key", "m").invoke(PNG_B64, "prompt")


def test_ollama_posts_raw_base64(monkeypatch) -> None:
    captured: Dict[str, Any] = {}

    def fake_post(url, json=None, timeout=None):
        captured.update(url=url, json=json)
        return _Response(200, {"message": {"content": "```json\n{\"books\": []}\n```"}})

    monkeypatch.setattr(backends.requests, "post", fake_post)
    svc = OllamaExtractionService("http://localhost:11434/", "llava")

    assert "books" in svc.invoke(f"data:image/png;base64,{PNG_B64}", "prompt")
    assert captured["url"] == "http://localhost:11434/api/chat"
    assert captured["json"]["messages"][0]["images"] == [PNG_B64]
    assert captured["json"]["stream"] is False


def test_openai_reads_first_choice() -> None:
    svc = OpenAIExtractionService("sk-test", "gpt-4o-mini")
    calls = []

    def create(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content='{"books": []}'))])

    svc.client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))

    assert svc.invoke(PNG_B64, "prompt") == '{"books": []}'
    assert calls[0]["model"] == "gpt-4o-mini"
    assert calls[0]["max_tokens"] == 2000


def test_build_extraction_service_by_backend() -> None:
    assert isinstance(
        build_extraction_service(Settings(extraction_backend="openrouter", openrouter_api_key="k")),
        OpenRouterExtractionService,
    )
    assert isinstance(build_extraction_service(Settings(extraction_backend="ollama")), OllamaExtractionService)
    with pytest.raises(ConfigError):
        build_extraction_service(Settings(extraction_backend="openrouter"))
    with pytest.raises(ConfigError):
        build_extraction_service(Settings(extraction_backend="openai"))
    with pytest.raises(ConfigError):
        build_extraction_service(Settings(extraction_backend="bedrock"))
