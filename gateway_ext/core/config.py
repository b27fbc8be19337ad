"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Every component is opt-in: rate limiting stays a passthrough until
RATE_LIMIT_ENABLED=true, and health probes report "disabled" for any
dependency whose URL is not configured.
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


# Load .env file early to populate os.environ before creating nested settings.
# Nested BaseSettings don't inherit env_file.
if _env_file and not os.getenv("TESTING"):
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    Static type checkers treat BaseSettings fields as constructor arguments,
    which is not how BaseSettings is intended to be used.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> "RateLimitSettings":
    return RateLimitSettings()  # type: ignore[call-arg]


def _build_redis_settings() -> "RedisSettings":
    return RedisSettings()  # type: ignore[call-arg]


def _build_database_settings() -> "DatabaseSettings":
    return DatabaseSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    title: str = Field(
        "Gateway Extensions",
        description="Title shown in the OpenAPI document",
    )
    health_path_prefix: str = Field(
        "/health",
        description="Path prefix under which the health router is mounted",
    )
    health_probe_timeout_seconds: float = Field(
        5.0,
        description="Upper bound for a single dependency probe",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Per-API-key rate limiting.

    Environment variables: RATE_LIMIT_ENABLED, RATE_LIMIT_POINTS,
    RATE_LIMIT_DURATION, RATE_LIMIT_BLOCK_DURATION.
    """

    enabled: bool = Field(
        False,
        description="Master switch; when false the middleware is a passthrough",
    )
    points: int = Field(
        100,
        description="Maximum number of requests allowed per window (per API key)",
        ge=1,
    )
    duration: int = Field(
        60,
        description="Window length in seconds",
        ge=1,
    )
    block_duration: int = Field(
        60,
        description="Cooldown in seconds once the quota is exceeded",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class RedisSettings(BaseSettings):
    """Shared key-value store (Redis) connection settings."""

    url: str | None = Field(
        None,
        description="Redis URL, e.g. redis://localhost:6379/0. Unset means in-memory store",
    )
    socket_timeout_seconds: float = Field(
        2.0,
        description="Socket and connect timeout for every Redis command",
        gt=0,
    )
    key_prefix: str = Field(
        "ratelimit:apikey:",
        description="Namespace prepended to the caller identity for rate limit records",
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class DatabaseSettings(BaseSettings):
    """Relational store used by the readiness probe."""

    url: str | None = Field(
        None,
        description="SQLAlchemy database URL. Unset disables the database probe",
    )
    probe_table: str | None = Field(
        None,
        description="Table read (LIMIT 1) by the probe; SELECT 1 when unset",
    )

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="json or plain")
    output: str = Field("stdout", description="stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(0, description="Rotate log file at this size (0 disables rotation)")
    backup_count: int = Field(5, description="Rotated files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Raises validation errors on startup if a setting is malformed
    (e.g. RATE_LIMIT_POINTS=0).
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    redis: RedisSettings = Field(default_factory=_build_redis_settings)
    database: DatabaseSettings = Field(default_factory=_build_database_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
