"""Configuration management with Pydantic Settings.

Environment variables are loaded from:
1. Environment variables (highest priority)
2. .env file (development)
3. Defaults (lowest priority)
"""

import re
from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging level."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Logging format."""

    JSON = "json"
    TEXT = "text"


class SupabaseSettings(BaseSettings):
    """Supabase project configuration."""

    model_config = SettingsConfigDict(env_prefix="SUPABASE_")

    url: str = Field(default="", description="Supabase project URL")
    anon_key: str = Field(default="", description="Supabase anon (public) API key")
    jwt_secret: str | None = Field(
        default=None,
        description="Legacy HS256 JWT secret; JWKS is used when unset",
    )

    @property
    def is_configured(self) -> bool:
        """Check if the project URL and API key are set."""
        return bool(self.url and self.anon_key)

    @property
    def realtime_url(self) -> str:
        """Build the realtime websocket URL (wss://<project>/realtime/v1)."""
        base = self.url.rstrip("/")
        base = re.sub(r"^http://", "ws://", base)
        base = re.sub(r"^https://", "wss://", base)
        return f"{base}/realtime/v1"

    @property
    def jwks_url(self) -> str:
        """Build the auth JWKS URL."""
        return f"{self.url.rstrip('/')}/auth/v1/.well-known/jwks.json"


class RealtimeSettings(BaseSettings):
    """Realtime subscription, reconnection and session settings."""

    model_config = SettingsConfigDict(env_prefix="REALTIME_")

    # Reconnection policy
    max_reconnect_attempts: int = Field(
        default=5,
        description="Reconnect attempts before giving up on a subscription",
    )
    reconnect_base_delay_seconds: float = Field(
        default=1.0,
        description="Delay before the first reconnect attempt",
    )
    reconnect_max_delay_seconds: float = Field(
        default=30.0,
        description="Upper bound for the reconnect delay",
    )

    # Connection probing
    heartbeat_timeout_seconds: float = Field(
        default=5.0,
        description="How long check_connection waits for SUBSCRIBED",
    )
    teardown_timeout_seconds: float = Field(
        default=5.0,
        description="How long a single channel removal may take",
    )
    liveness_interval_seconds: float = Field(
        default=30.0,
        description="Interval between session liveness checks",
    )
    reinitialize_delay_seconds: float = Field(
        default=1.0,
        description="Pause between teardown and reinitialization of a session",
    )

    # Channel naming
    presence_channel: str = Field(
        default="workspace_presence",
        description="Workspace-wide presence channel",
    )
    heartbeat_channel: str = Field(
        default="connection_test",
        description="Prefix for throwaway connection probe channels",
    )
    chat_event: str = Field(default="message", description="Broadcast event for chat channels")
    schedule_filter_column: str | None = Field(
        default=None,
        description="Column on schedules matched against the user id (unset = all rows)",
    )

    # WebSocket clients
    client_queue_size: int = Field(
        default=100,
        description="Outbound messages buffered per WebSocket client",
    )

    @field_validator("max_reconnect_attempts", "client_queue_size")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Ensure counters are at least 1."""
        return max(1, v)


class Settings(BaseSettings):
    """Main application settings.

    All settings can be overridden via environment variables.
    For nested settings, use the appropriate prefix (e.g., SUPABASE_URL).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(default="fitcenter-realtime", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        alias="ENV",
        description="Deployment environment",
    )

    # Logging configuration
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    log_format: LogFormat = Field(default=LogFormat.JSON, description="Logging format")

    # Server configuration
    host: str = Field(default="0.0.0.0", description="Server bind host")
    port: int = Field(default=8080, description="Server bind port")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Nested settings
    supabase: SupabaseSettings = Field(default_factory=SupabaseSettings)
    realtime: RealtimeSettings = Field(default_factory=RealtimeSettings)

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses LRU cache to avoid re-parsing environment variables.
    """
    return Settings()
