from __future__ import annotations

from pathlib import Path

import pytest

from loan_reminder.config import ConfigError, load_settings


def test_defaults_without_env_or_dotenv(tmp_path: Path) -> None:
    settings = load_settings(str(tmp_path), environ={})
    assert settings.timezone == "Asia/Tokyo"
    assert settings.extraction_backend == "openrouter"
    assert settings.default_user_id == "defaultUser"
    assert settings.max_tokens == 2000
    assert settings.db_path is None


def test_environment_wins_over_dotenv(tmp_path: Path) -> None:
    (tmp_path / ".env").write_text(
        "EXTRACTION_BACKEND=ollama\nOLLAMA_MODEL='llava:13b'\nTIMEZONE=Europe/Berlin\n# comment\n",
        encoding="utf-8",
    )
    nested = tmp_path / "src" / "pkg"
    nested.mkdir(parents=True)

    settings = load_settings(str(nested), environ={"TIMEZONE": "UTC", "LOAN_DB_PATH": str(tmp_path / "x.db")})

    assert settings.extraction_backend == "ollama"
    assert settings.ollama_model == "llava:13b"
    assert settings.timezone == "UTC"
    assert settings.db_path == str(tmp_path / "x.db")


@pytest.mark.parametrize(
    "environ",
    [
        {"EXTRACTION_BACKEND": "bedrock"},
        {"EXTRACTION_MAX_TOKENS": "lots"},
        {"EXTRACTION_TIMEOUT": "0"},
    ],
)
def test_invalid_values_raise_config_error(tmp_path: Path, environ) -> None:
    with pytest.raises(ConfigError):
        load_settings(str(tmp_path), environ=environ)
