import os
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from dotenv import dotenv_values

from .logging import get_logger
from .paths import expand_abs

log = get_logger("config")


DEFAULT_TIMEZONE = "Asia/Tokyo"
DEFAULT_BACKEND = "openrouter"
DEFAULT_USER_ID = "defaultUser"
DEFAULT_OPENROUTER_MODEL = "anthropic/claude-3.5-sonnet"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "qwen2.5vl:7b"
DEFAULT_VAPID_EMAIL = "mailto:admin@example.com"


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class Settings:
    """Resolved runtime configuration, passed explicitly to each component."""

    db_path: Optional[str] = None
    timezone: str = DEFAULT_TIMEZONE
    default_user_id: str = DEFAULT_USER_ID
    extraction_backend: str = DEFAULT_BACKEND
    openrouter_api_key: Optional[str] = None
    openrouter_model: str = DEFAULT_OPENROUTER_MODEL
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    openai_model: str = DEFAULT_OPENAI_MODEL
    ollama_url: str = DEFAULT_OLLAMA_URL
    ollama_model: str = DEFAULT_OLLAMA_MODEL
    max_tokens: int = 2000
    timeout_seconds: int = 30
    vapid_public_key: Optional[str] = None
    vapid_private_key: Optional[str] = None
    vapid_email: str = DEFAULT_VAPID_EMAIL


def _find_upwards(start_dir: str, filename: str) -> Optional[str]:
    """Return first matching file found when walking up from start_dir.

    This makes running tools from subdirectories (e.g., `src/`) still find
    the repository-level `.env`.
    """
    d = os.path.abspath(start_dir or ".")
    while True:
        candidate = os.path.join(d, filename)
        if os.path.isfile(candidate):
            return candidate
        parent = os.path.dirname(d)
        if parent == d:
            return None
        d = parent


def _read_dotenv(dotenv_dir: str) -> Dict[str, str]:
    path = _find_upwards(dotenv_dir, ".env")
    if not path:
        log.debug(f"No .env found starting from: {os.path.abspath(dotenv_dir)}")
        return {}
    values = {k: v for k, v in dotenv_values(path).items() if v is not None}
    log.debug(f"Loaded {len(values)} key(s) from .env at {path}")
    return values


def _int_setting(raw: Optional[str], key: str, default: int) -> int:
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {value}")
    return value


def load_settings(dotenv_dir: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build Settings from the environment, falling back to the nearest .env.

    Process environment wins over .env values; blank values count as unset.
    """
    env = os.environ if environ is None else environ
    file_values = _read_dotenv(dotenv_dir or os.getcwd())

    def _get(key: str) -> Optional[str]:
        v = env.get(key)
        if v is None or not v.strip():
            v = file_values.get(key)
        if v is None or not v.strip():
            return None
        return v.strip()

    backend = (_get("EXTRACTION_BACKEND") or DEFAULT_BACKEND).lower()
    if backend not in {"openrouter", "openai", "ollama"}:
        raise ConfigError(f"Unknown EXTRACTION_BACKEND={backend!r}; expected openrouter, openai or ollama")

    db_path = _get("LOAN_DB_PATH")
    settings = Settings(
        db_path=expand_abs(db_path) if db_path else None,
        timezone=_get("TIMEZONE") or DEFAULT_TIMEZONE,
        default_user_id=_get("DEFAULT_USER_ID") or DEFAULT_USER_ID,
        extraction_backend=backend,
        openrouter_api_key=_get("OPENROUTER_API_KEY") or _get("OPEN_ROUTER_API_KEY"),
        openrouter_model=_get("OPENROUTER_MODEL") or DEFAULT_OPENROUTER_MODEL,
        openai_api_key=_get("OPENAI_API_KEY"),
        openai_base_url=_get("OPENAI_BASE_URL"),
        openai_model=_get("OPENAI_MODEL") or DEFAULT_OPENAI_MODEL,
        ollama_url=_get("OLLAMA_URL") or DEFAULT_OLLAMA_URL,
        ollama_model=_get("OLLAMA_MODEL") or DEFAULT_OLLAMA_MODEL,
        max_tokens=_int_setting(_get("EXTRACTION_MAX_TOKENS"), "EXTRACTION_MAX_TOKENS", 2000),
        timeout_seconds=_int_setting(_get("EXTRACTION_TIMEOUT"), "EXTRACTION_TIMEOUT", 30),
        vapid_public_key=_get("VAPID_PUBLIC_KEY"),
        vapid_private_key=_get("VAPID_PRIVATE_KEY"),
        vapid_email=_get("VAPID_EMAIL") or DEFAULT_VAPID_EMAIL,
    )
    log.debug(
        f"Settings resolved: backend={settings.extraction_backend} timezone={settings.timezone} "
        f"db_path={settings.db_path or 'default'}"
    )
    return settings
