"""Application configuration using Pydantic Settings.

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


# Nested BaseSettings don't inherit env_file, so populate os.environ up front
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    """Build app settings from environment.

    Static type checkers treat fields without defaults as required constructor
    arguments, which is not how BaseSettings is meant to be used.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field(
        "json",
        description="Log format: 'json' (structured) or 'plain'",
    )
    output: str = Field(
        "stdout",
        description="Log destination: 'stdout' or 'file'",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output=file (default logs/app.log)",
    )
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
    )
    backup_count: int = Field(5, description="Rotated log files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read/propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Guard and monitoring configuration for the API process."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )

    rate_limit_enabled: bool = Field(
        True,
        description="Enable per-client token-bucket rate limiting",
    )
    rate_limit_requests_per_minute: int = Field(
        60,
        description="Bucket capacity and refill rate (requests per minute per client)",
        ge=1,
    )
    rate_limit_cleanup_interval_seconds: float = Field(
        300.0,
        description="How often idle client buckets are swept",
        gt=0,
    )
    rate_limit_idle_retention_seconds: float = Field(
        3600.0,
        description="Buckets idle for longer than this are evicted by the sweep",
        gt=0,
    )
    rate_limit_include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )
    rate_limit_exempt_paths: list[str] = Field(
        default_factory=lambda: ["/health"],
        description="Paths that bypass the rate limiter",
    )

    cache_default_ttl_seconds: float = Field(
        300.0,
        description="TTL applied when set() is called without an explicit ttl",
        gt=0,
    )
    cache_cleanup_interval_seconds: float = Field(
        60.0,
        description="How often expired cache entries are swept",
        gt=0,
    )
    cache_max_entries: int | None = Field(
        None,
        description="Optional LRU capacity bound for the cache (unbounded when unset)",
    )

    error_history_size: int = Field(
        100,
        description="Number of error records retained in the rolling history",
        ge=1,
    )
    slow_request_threshold_seconds: float = Field(
        1.0,
        description="Requests slower than this raise a slow_request alert",
        gt=0,
    )
    health_max_errors_per_minute: float = Field(
        5.0,
        description="Error rate above which /health reports unhealthy",
        ge=0,
    )
    alert_dispatch_workers: int = Field(
        4,
        description="Thread pool size used to dispatch alert callbacks",
        ge=1,
    )
    monitoring_excluded_paths: list[str] = Field(
        default_factory=lambda: ["/health", "/metrics"],
        description="Paths not recorded by the request monitor",
    )

    metrics_api_key_required: bool = Field(
        True,
        description="Whether GET /metrics requires an X-API-Key header",
    )
    metrics_api_keys: str | None = Field(
        None,
        description="Comma-separated list of API keys allowed to read /metrics",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if a setting is malformed.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()
