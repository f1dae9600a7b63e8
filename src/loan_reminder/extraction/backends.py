"""Vision model clients that turn a lending-slip photo into a text answer.

Each backend exposes ``invoke(image_base64, prompt) -> str`` and raises
``ServiceError`` on any transport or model failure. Nothing here retries;
a failed call is surfaced to the caller as-is.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any, Dict, List, Optional, Protocol

import httpx
import requests
from openai import OpenAI, APIConnectionError, APITimeoutError, APIStatusError

from ..config import ConfigError, Settings
from ..logging import get_logger


LOG = get_logger("extraction-backends")


LENDING_SLIP_PROMPT = """This is an image of a library lending list. Extract all book information and output it in the following JSON format.
IMPORTANT: Output ONLY the raw JSON string. Do NOT wrap it in markdown code blocks (like ```json). Do not add any conversational text.
{
  "books": [
    {
      "title": "Book Title",
      "lending_date": "YYYY-MM-DD",
      "due_date": "YYYY-MM-DD"
    }
  ]
}"""

_MAGIC_MIME = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


class ServiceError(Exception):
    pass


class ImageExtractionService(Protocol):
    def invoke(self, image_base64: str, prompt: str) -> str:
        ...


def _strip_data_url(image_base64: str) -> str:
    if image_base64.startswith("data:") and "," in image_base64:
        return image_base64.split(",", 1)[1]
    return image_base64


def guess_image_mime(image_base64: str) -> str:
    """Sniff the image type from its leading bytes; PNG when unknown."""
    head = _strip_data_url(image_base64 or "")[:64]
    try:
        raw = base64.b64decode(head + "=" * (-len(head) % 4), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ServiceError(f"Image is not valid base64: {exc}") from exc
    for magic, mime in _MAGIC_MIME:
        if raw.startswith(magic):
            return mime
    if raw[:4] == b"RIFF" and raw[8:12] == b"WEBP":
        return "image/webp"
    return "image/png"


def _data_url(image_base64: str) -> str:
    payload = _strip_data_url(image_base64)
    return f"data:{guess_image_mime(payload)};base64,{payload}"


def _require_text(text: Any, backend: str) -> str:
    if not isinstance(text, str) or not text.strip():
        raise ServiceError(f"{backend} returned no text content")
    return text


def _chat_messages(image_base64: str, prompt: str) -> List[Dict[str, Any]]:
    return [
        {
            "role": "user",
            "content": [
                {"type": "image_url", "image_url": {"url": _data_url(image_base64)}},
                {"type": "text", "text": prompt},
            ],
        }
    ]


class OpenRouterExtractionService:
    """Thin wrapper around OpenRouter chat/completions with a data URL image."""

    ENDPOINT = "https://openrouter.ai/api/v1/chat/completions"

    def __init__(self, api_key: str, model_name: str, *, max_tokens: int = 2000, timeout_seconds: int = 30) -> None:
        self.api_key = api_key
        self.model_name = model_name
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds

    def invoke(self, image_base64: str, prompt: str) -> str:
        payload = {
            "model": self.model_name,
            "messages": _chat_messages(image_base64, prompt),
            "temperature": 0.0,
            "max_tokens": self.max_tokens,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        LOG.info("Calling OpenRouter model='%s'", self.model_name)
        try:
            resp = requests.post(self.ENDPOINT, headers=headers, json=payload, timeout=self.timeout_seconds)
        except requests.RequestException as exc:
            LOG.error("OpenRouter request failed: %s", exc)
            raise ServiceError(f"OpenRouter request failed: {exc}") from exc

        if resp.status_code >= 400:
            LOG.error("OpenRouter HTTP %s: %s", resp.status_code, resp.text[:500])
            raise ServiceError(f"OpenRouter HTTP {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as exc:
            raise ServiceError("OpenRouter returned a non-JSON body") from exc
        choices = body.get("choices") or []
        if not choices:
            LOG.error("OpenRouter returned no choices: %s", body)
            raise ServiceError("OpenRouter returned no choices")
        message = choices[0].get("message") or {}
        text = _require_text(message.get("content"), "OpenRouter")
        LOG.debug("OpenRouter response (first 500 chars): %r", text[:500])
        return text


class OpenAIExtractionService:
    """OpenAI chat completions with an explicit httpx client and no SDK retries."""

    def __init__(
        self,
        api_key: str,
        model_name: str,
        *,
        base_url: Optional[str] = None,
        max_tokens: int = 2000,
        timeout_seconds: int = 30,
    ) -> None:
        self.model_name = model_name
        self.max_tokens = max_tokens
        http_client = httpx.Client(
            timeout=httpx.Timeout(connect=10.0, read=float(timeout_seconds), write=30.0, pool=10.0),
        )
        self.client = OpenAI(
            api_key=api_key,
            base_url=base_url,
            http_client=http_client,
            max_retries=0,
        )

    def invoke(self, image_base64: str, prompt: str) -> str:
        LOG.info("Calling OpenAI chat completions model='%s'", self.model_name)
        try:
            resp = self.client.chat.completions.create(
                model=self.model_name,
                messages=_chat_messages(image_base64, prompt),
                max_tokens=self.max_tokens,
            )
        except (APIConnectionError, APITimeoutError) as exc:
            LOG.error("OpenAI transport failure: %s", exc)
            raise ServiceError(f"OpenAI transport failure: {exc}") from exc
        except APIStatusError as exc:
            LOG.error("OpenAI HTTP %s: %s", exc.status_code, exc)
            raise ServiceError(f"OpenAI HTTP {exc.status_code}") from exc

        choices = getattr(resp, "choices", None) or []
        if not choices:
            raise ServiceError("OpenAI returned no choices")
        text = _require_text(choices[0].message.content, "OpenAI")
        LOG.debug("OpenAI response (first 500 chars): %r", text[:500])
        return text


class OllamaExtractionService:
    """Local Ollama vision model via /api/chat (non-streaming)."""

    def __init__(self, base_url: str, model_name: str, *, timeout_seconds: int = 30) -> None:
        base = base_url.strip()
        self.endpoint = base if base.endswith("/api/chat") else base.rstrip("/") + "/api/chat"
        self.model_name = model_name
        self.timeout_seconds = timeout_seconds

    def invoke(self, image_base64: str, prompt: str) -> str:
        payload = {
            "model": self.model_name,
            "messages": [{"role": "user", "content": prompt, "images": [_strip_data_url(image_base64)]}],
            "stream": False,
            "options": {"temperature": 0},
        }
        LOG.info("Calling Ollama model='%s' at %s", self.model_name, self.endpoint)
        try:
            resp = requests.post(self.endpoint, json=payload, timeout=self.timeout_seconds)
            resp.raise_for_status()
            body = resp.json()
        except requests.RequestException as exc:
            LOG.error("Ollama request failed: %s", exc)
            raise ServiceError(f"Ollama request failed: {exc}") from exc
        except ValueError as exc:
            raise ServiceError("Ollama returned a non-JSON body") from exc
        message = body.get("message") or {}
        return _require_text(message.get("content"), "Ollama")


def build_extraction_service(settings: Settings) -> ImageExtractionService:
    backend = settings.extraction_backend
    if backend == "openrouter":
        if not settings.openrouter_api_key:
            raise ConfigError("OPENROUTER_API_KEY missing in env/.env; cannot run extraction")
        LOG.info("Backend selected: OpenRouter")
        return OpenRouterExtractionService(
            settings.openrouter_api_key,
            settings.openrouter_model,
            max_tokens=settings.max_tokens,
            timeout_seconds=settings.timeout_seconds,
        )
    if backend == "openai":
        if not settings.openai_api_key:
            raise ConfigError("OPENAI_API_KEY missing in env/.env; cannot run extraction")
        LOG.info("Backend selected: OpenAI")
        return OpenAIExtractionService(
            settings.openai_api_key,
            settings.openai_model,
            base_url=settings.openai_base_url,
            max_tokens=settings.max_tokens,
            timeout_seconds=settings.timeout_seconds,
        )
    if backend == "ollama":
        LOG.info("Backend selected: Ollama")
        return OllamaExtractionService(
            settings.ollama_url,
            settings.ollama_model,
            timeout_seconds=settings.timeout_seconds,
        )
    raise ConfigError(f"Unknown extraction backend {backend!r}")
