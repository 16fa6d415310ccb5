"""Application configuration using Pydantic Settings."""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from grailseeker.core.errors import ConfigurationError

DEFAULT_COMICVINE_BASE_URL = "https://comicvine.gamespot.com/api"


def _default_data_dir() -> Path:
    """Resolve the default data directory.

    /config is used inside containers, backend/data otherwise.
    """
    if Path("/config").exists():
        return Path("/config")
    # __file__ is backend/grailseeker/core/config.py
    return (Path(__file__).parent.parent.parent / "data").resolve()


def json_config_settings_source(
    settings: BaseSettings | None = None,
) -> dict[str, Any]:  # noqa: ANN001
    """Load settings from settings.json file.

    This source has lowest priority - env vars will override JSON values.
    Only top-level scalar keys are used here; the "scanner" section is read
    separately by grailseeker.core.scanner.config.

    Returns:
        Dictionary with setting keys (lowercase) and values from JSON file.
    """
    data_dir_env = os.environ.get("GRAILSEEKER_DATA_DIR", "")
    if data_dir_env and Path(data_dir_env).exists():
        data_dir = Path(data_dir_env)
    else:
        data_dir = _default_data_dir()

    settings_file = data_dir / "config" / "settings.json"
    if not settings_file.exists():
        return {}

    try:
        with settings_file.open("r") as f:
            data = json.load(f)
    except (OSError, ValueError):
        return {}

    if not isinstance(data, dict):
        return {}

    # Nested {"comicvine": {"api_key": ...}} is flattened to comicvine_api_key
    flattened: dict[str, Any] = {}
    comicvine = data.get("comicvine")
    if isinstance(comicvine, dict):
        for key, value in comicvine.items():
            flattened[f"comicvine_{key}"] = value

    for key, value in data.items():
        if key in ("comicvine", "scanner"):
            continue
        flattened[key] = value

    return {k.lower(): v for k, v in flattened.items()}


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from:
    1. JSON file (settings.json in config directory) - lowest priority
    2. .env file
    3. Environment variables
    4. Values passed to Settings() - highest priority

    All settings are prefixed with GRAILSEEKER_ (e.g., GRAILSEEKER_ENV=production).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="GRAILSEEKER_",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Order settings sources, highest priority first.

        pydantic-settings lets earlier sources win:
        1. Init settings (values passed to Settings())
        2. Environment variables
        3. .env file
        4. JSON file (settings.json)
        """
        return (  # type: ignore[return-value]
            init_settings,
            env_settings,
            dotenv_settings,
            json_config_settings_source,
        )

    # Application
    env: Literal["development", "production", "testing"] = Field(
        default="development",
        description="Application environment (development, production, testing)",
    )

    host_bind_address: str = Field(
        default="127.0.0.1",
        description="Host address to bind the server to",
    )

    host_port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port number to bind the server to",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    data_dir: Path = Field(
        default_factory=_default_data_dir,
        description="Base directory for all application data (config, database, cache, logs)",
    )

    # ComicVine catalog
    comicvine_api_key: str | None = Field(
        default=None,
        description="ComicVine API key (required; absence is a startup error)",
    )
    comicvine_base_url: str = Field(
        default=DEFAULT_COMICVINE_BASE_URL,
        description="ComicVine API base URL",
    )
    comicvine_timeout: float = Field(
        default=15.0,
        gt=0,
        description="Per-request timeout in seconds for ComicVine calls",
    )
    comicvine_rate_limit: int = Field(
        default=40,
        ge=1,
        description="Maximum ComicVine requests per rate limit period",
    )
    comicvine_rate_limit_period: int = Field(
        default=60,
        ge=1,
        description="Rate limit window in seconds",
    )
    comicvine_max_retries: int = Field(
        default=2,
        ge=0,
        description="Retries on HTTP 420/429 and network errors",
    )
    comicvine_cache_enabled: bool = Field(
        default=True,
        description="Cache ComicVine responses on disk",
    )

    @property
    def config_dir(self) -> Path:
        """Directory for configuration files (settings.json, etc.)."""
        return self.data_dir / "config"

    @property
    def database_dir(self) -> Path:
        """Directory for database files."""
        return self.data_dir / "database"

    @property
    def cache_dir(self) -> Path:
        """Directory for cache files."""
        return self.data_dir / "cache"

    @property
    def logs_dir(self) -> Path:
        """Directory for log files."""
        return self.data_dir / "logs"

    @property
    def database_file(self) -> Path:
        """SQLite database file holding scan corrections."""
        return self.database_dir / "grailseeker.db"

    @property
    def is_debug(self) -> bool:
        """Check if running in debug/development mode."""
        return self.env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.env == "production"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.env == "testing"

    def model_post_init(self, __context: object) -> None:
        """Post-initialization: create data directories if they don't exist."""
        self.data_dir = self.data_dir.resolve()

        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.database_dir.mkdir(parents=True, exist_ok=True)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)


def validate_catalog_credentials(settings: Settings) -> str:
    """Ensure the ComicVine API key is configured.

    Args:
        settings: Application settings

    Returns:
        The stripped API key

    Raises:
        ConfigurationError: If the key is missing or blank
    """
    api_key = (settings.comicvine_api_key or "").strip()
    if not api_key:
        raise ConfigurationError(
            "ComicVine API key is not configured (set GRAILSEEKER_COMICVINE_API_KEY)"
        )
    return api_key


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the cached settings instance.

    The cache is cleared when reload_settings() is called.
    """
    return Settings()


def reload_settings() -> Settings:
    """Reload settings from all sources (JSON, .env, env vars).

    Returns:
        New Settings instance
    """
    get_settings.cache_clear()
    return get_settings()
