"""Tests for configuration functionality."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from grailseeker.core.config import (
    Settings,
    get_settings,
    reload_settings,
    validate_catalog_credentials,
)
from grailseeker.core.errors import ConfigurationError


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that settings have correct defaults."""
    monkeypatch.delenv("GRAILSEEKER_ENV")
    monkeypatch.delenv("GRAILSEEKER_COMICVINE_API_KEY")

    settings = Settings(_env_file=None)

    assert settings.env == "development"
    assert settings.host_bind_address == "127.0.0.1"
    assert settings.host_port == 8000
    assert settings.log_level == "INFO"
    assert settings.comicvine_api_key is None
    assert settings.comicvine_base_url == "https://comicvine.gamespot.com/api"
    assert settings.comicvine_timeout == 15.0
    assert settings.comicvine_max_retries == 2
    assert settings.is_debug is True
    assert settings.is_production is False
    assert settings.is_testing is False

    assert settings.config_dir == settings.data_dir / "config"
    assert settings.database_dir == settings.data_dir / "database"
    assert settings.cache_dir == settings.data_dir / "cache"
    assert settings.logs_dir == settings.data_dir / "logs"
    assert settings.database_file == settings.database_dir / "grailseeker.db"


def test_settings_from_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that settings can be loaded from environment variables."""
    monkeypatch.setenv("GRAILSEEKER_ENV", "production")
    monkeypatch.setenv("GRAILSEEKER_HOST_BIND_ADDRESS", "0.0.0.0")
    monkeypatch.setenv("GRAILSEEKER_HOST_PORT", "9000")
    monkeypatch.setenv("GRAILSEEKER_COMICVINE_TIMEOUT", "5")

    settings = reload_settings()

    assert settings.env == "production"
    assert settings.host_bind_address == "0.0.0.0"
    assert settings.host_port == 9000
    assert settings.comicvine_timeout == 5.0
    assert settings.is_production is True
    assert settings.is_debug is False


def test_settings_from_env_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that settings can be loaded from .env file."""
    monkeypatch.delenv("GRAILSEEKER_ENV")
    env_file = tmp_path / ".env"
    env_file.write_text(
        "GRAILSEEKER_ENV=testing\n"
        "GRAILSEEKER_HOST_BIND_ADDRESS=localhost\n"
        "GRAILSEEKER_HOST_PORT=8080\n"
        "GRAILSEEKER_LOG_LEVEL=DEBUG\n"
    )

    settings = Settings(_env_file=str(env_file))

    assert settings.env == "testing"
    assert settings.host_bind_address == "localhost"
    assert settings.host_port == 8080
    assert settings.log_level == "DEBUG"
    assert settings.is_testing is True


def test_settings_from_json_file(
    isolated_settings: Settings, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test that settings.json is read, with env vars taking priority."""
    settings_file = isolated_settings.config_dir / "settings.json"
    settings_file.write_text(
        json.dumps(
            {
                "host_port": 8123,
                "comicvine": {"api_key": "from-json", "rate_limit": 10},
                "scanner": {"auto_resolve_threshold": 0.9},
            }
        )
    )

    settings = reload_settings()

    assert settings.host_port == 8123
    assert settings.comicvine_rate_limit == 10
    # GRAILSEEKER_COMICVINE_API_KEY is set for every test
    assert settings.comicvine_api_key == "test-api-key"

    monkeypatch.delenv("GRAILSEEKER_COMICVINE_API_KEY")
    assert reload_settings().comicvine_api_key == "from-json"


def test_init_values_override_env_and_json(isolated_settings: Settings) -> None:
    """Test that values passed to Settings() beat env vars and settings.json."""
    (isolated_settings.config_dir / "settings.json").write_text(
        json.dumps({"log_level": "ERROR", "comicvine": {"api_key": "from-json"}})
    )

    settings = Settings(comicvine_api_key="from-init", log_level="WARNING")

    assert settings.comicvine_api_key == "from-init"
    assert settings.log_level == "WARNING"
    assert settings.env == "testing"


def test_invalid_json_file_is_ignored(isolated_settings: Settings) -> None:
    """Test that a corrupt settings.json falls back to defaults."""
    (isolated_settings.config_dir / "settings.json").write_text("{not json")

    settings = reload_settings()

    assert settings.host_port == 8000


def test_settings_port_validation() -> None:
    """Test that port validation works."""
    with pytest.raises(ValidationError):
        Settings(host_port=0)

    with pytest.raises(ValidationError):
        Settings(host_port=70000)


def test_settings_env_validation() -> None:
    """Test that env validation works."""
    with pytest.raises(ValidationError):
        Settings(env="invalid")


def test_comicvine_timeout_must_be_positive() -> None:
    """Test catalog timeout validation."""
    with pytest.raises(ValidationError):
        Settings(comicvine_timeout=0)


def test_get_settings_singleton() -> None:
    """Test that get_settings() returns a singleton."""
    settings1 = get_settings()
    settings2 = get_settings()

    assert settings1 is settings2


def test_data_dir_creation(tmp_path: Path) -> None:
    """Test that data directories are created automatically."""
    data_dir = tmp_path / "fresh"

    settings = Settings(data_dir=str(data_dir))

    assert settings.data_dir.is_dir()
    assert settings.config_dir.exists()
    assert settings.database_dir.exists()
    assert settings.cache_dir.exists()
    assert settings.logs_dir.exists()


def test_settings_case_insensitive(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that settings are case-insensitive."""
    monkeypatch.delenv("GRAILSEEKER_ENV")
    monkeypatch.setenv("grailseeker_env", "production")

    settings = reload_settings()

    assert settings.env == "production"


def test_validate_catalog_credentials(isolated_settings: Settings) -> None:
    """Test that a configured key is returned stripped."""
    settings = isolated_settings.model_copy(update={"comicvine_api_key": "  abc123  "})

    assert validate_catalog_credentials(settings) == "abc123"


@pytest.mark.parametrize("api_key", [None, "", "   "])
def test_missing_catalog_credentials(isolated_settings: Settings, api_key) -> None:
    """Test that a missing or blank key is a configuration error."""
    settings = isolated_settings.model_copy(update={"comicvine_api_key": api_key})

    with pytest.raises(ConfigurationError, match="GRAILSEEKER_COMICVINE_API_KEY"):
        validate_catalog_credentials(settings)
