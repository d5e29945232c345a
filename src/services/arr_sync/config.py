"""
ArrSync Service Configuration

Configuration settings using pydantic-settings for environment variable support.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal
from urllib.parse import urlparse

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.common.exceptions import InvalidConfigError, MissingConfigError


@dataclass(frozen=True)
class UpstreamSettings:
    """
    Immutable snapshot of the upstream client settings.

    Shared by the client and the availability monitor.
    """

    base_url: str
    api_key: str | None = None
    timeout_seconds: float = 30
    max_retries: int = 3
    initial_backoff_seconds: float = 1.0
    monitor_interval_seconds: float = 60

    def __post_init__(self) -> None:
        if self.timeout_seconds < 1:
            raise InvalidConfigError("timeout_seconds", str(self.timeout_seconds), "Must be >= 1")
        if self.max_retries < 0:
            raise InvalidConfigError("max_retries", str(self.max_retries), "Must be >= 0")
        if self.initial_backoff_seconds <= 0:
            raise InvalidConfigError(
                "initial_backoff_seconds", str(self.initial_backoff_seconds), "Must be > 0"
            )
        if self.monitor_interval_seconds < 1:
            raise InvalidConfigError(
                "monitor_interval_seconds", str(self.monitor_interval_seconds), "Must be >= 1"
            )


class ArrSyncConfig(BaseSettings):
    """
    Configuration for the ArrSync service.

    Reads from environment variables with ARRSYNC_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="ARRSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server Identity
    server_name: str = Field(
        default="arrsync",
        description="Server name for identification",
    )
    server_version: str = Field(
        default="0.1.0",
        description="Server version",
    )
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )

    # HTTP Transport
    host: str = Field(
        default="0.0.0.0",
        description="Host to bind for HTTP transport",
    )
    port: int = Field(
        default=8080,
        description="Port for HTTP transport",
    )
    webhook_secret: str | None = Field(
        default=None,
        description="Shared secret expected in X-Webhook-Secret (unchecked when unset)",
    )

    # Upstream (Overseerr/Jellyseerr)
    overseerr_url: str = Field(
        default="http://localhost:5055",
        description="Base URL of the Overseerr/Jellyseerr instance",
    )
    overseerr_api_key: str | None = Field(
        default=None,
        description="API key sent as X-Api-Key",
    )

    # Resilience Configuration
    timeout_seconds: float = Field(
        default=30,
        ge=1,
        description="Per-attempt timeout for upstream calls",
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        description="Retries after the first attempt",
    )
    initial_backoff_seconds: float = Field(
        default=1.0,
        gt=0,
        description="First backoff delay; doubles per attempt up to 30s",
    )

    # Availability Monitor
    monitor_enabled: bool = Field(
        default=True,
        description="Run the background availability monitor",
    )
    monitor_interval_seconds: float = Field(
        default=60,
        ge=1,
        description="Base health-check interval",
    )

    # Behaviour
    dry_run: bool = Field(
        default=False,
        description="Log deletions instead of performing them",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )

    @field_validator("overseerr_url")
    @classmethod
    def validate_overseerr_url(cls, v: str) -> str:
        """Require an absolute http(s) URL; drop any trailing slash."""
        parsed = urlparse(v.strip())
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("must be an absolute http(s) URL")
        return v.strip().rstrip("/")

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode="after")
    def require_api_key_in_production(self) -> ArrSyncConfig:
        if self.environment == "production" and not self.overseerr_api_key:
            raise MissingConfigError(
                "overseerr_api_key",
                hint="Set ARRSYNC_OVERSEERR_API_KEY; it is required in production",
            )
        return self

    def upstream_settings(self) -> UpstreamSettings:
        """Snapshot the upstream client settings."""
        return UpstreamSettings(
            base_url=self.overseerr_url,
            api_key=self.overseerr_api_key,
            timeout_seconds=self.timeout_seconds,
            max_retries=self.max_retries,
            initial_backoff_seconds=self.initial_backoff_seconds,
            monitor_interval_seconds=self.monitor_interval_seconds,
        )


def load_config(**overrides: object) -> ArrSyncConfig:
    """
    Load configuration from environment, applying explicit overrides.

    Raises:
        InvalidConfigError: If a value fails validation
        MissingConfigError: If a value required for the environment is absent
    """
    try:
        return ArrSyncConfig(**overrides)
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or "config"
        raise InvalidConfigError(field, str(error.get("input")), error["msg"]) from e
