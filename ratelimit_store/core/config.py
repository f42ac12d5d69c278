"""Store configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file and not os.getenv("TESTING"):
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_store_settings() -> "StoreSettings":
    """Build store settings from environment."""

    return StoreSettings()


def _build_retry_settings() -> "RetrySettings":
    return RetrySettings()


def _build_log_settings() -> "LogSettings":
    return LogSettings()


class StoreSettings(BaseSettings):
    """Counter store configuration.

    The defaults match what rate limiting middleware expects when it
    creates a store without options: a ``RateLimit`` model with a one
    minute window.
    """

    model_name: str = Field(
        "RateLimit",
        description="Logical model name; the collection name is derived from it",
    )
    collection_name: str | None = Field(
        None,
        description="Explicit collection name overriding the derived one",
    )
    window_ms: int = Field(
        60000,
        description="How long in milliseconds to keep records of requests",
        ge=1,
    )
    backend: str = Field(
        "mongo",
        description="Document store backend (mongo or memory)",
    )
    mongo_url: str = Field(
        "mongodb://localhost:27017",
        description="MongoDB connection string",
    )
    database: str = Field(
        "ratelimit",
        description="MongoDB database holding the counter collection",
    )
    auto_index: bool = Field(
        True,
        description="Create the counter indexes before the first operation",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATELIMIT_",
        case_sensitive=False,
        protected_namespaces=(),
    )


class RetrySettings(BaseSettings):
    """Retry behavior for failed counter upserts.

    Setting ``max_attempts`` to none retries forever, which was the historical
    behavior of the store.
    """

    max_attempts: int | None = Field(
        10,
        description="Attempts per operation before giving up (none for unlimited)",
        ge=1,
    )
    base_delay_seconds: float = Field(
        0.01,
        description="Delay before the second retry; the first retry only yields",
        ge=0,
    )
    max_delay_seconds: float = Field(
        1.0,
        description="Upper bound for a single backoff delay",
        ge=0,
    )
    multiplier: float = Field(
        2.0,
        description="Exponential growth factor between delays",
        ge=1,
    )
    jitter: float = Field(
        0.1,
        description="Random fraction added on top of each delay",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATELIMIT_RETRY_",
        case_sensitive=False,
        env_parse_none_str="none",
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format (json or plain)")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    store: StoreSettings = Field(default_factory=_build_store_settings)
    retry: RetrySettings = Field(default_factory=_build_retry_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
