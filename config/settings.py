"""
Settings Module for Probemon

Configuration management using Pydantic Settings.
Supports environment variables, .env files, and runtime overrides.
Includes validation, type checking, and sensible defaults.

Probe definitions themselves do not live here; they are read from the
checks file (see config.loader). These settings cover the daemon around
the probes: cycle timing, worker pool, alert cooldown, the results
database, the status server, logging and the global notifier channels.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import (
    Field,
    SecretStr,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment enumeration."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging level enumeration."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class BaseSettingsConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True
    )


class MonitoringSettings(BaseSettingsConfig):
    """
    Monitoring Engine Configuration Settings

    Controls the check cycle, the probe worker pool and alert
    re-delivery.
    """

    model_config = SettingsConfigDict(
        env_prefix="MONITOR_",
        env_file=".env",
        extra="ignore"
    )

    # Cycle timing
    check_interval: int = Field(
        default=60,
        ge=1,
        le=86400,
        description="Seconds between check cycles"
    )
    cycle_timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="Seconds a cycle waits for its probes (defaults to check_interval)"
    )

    # Concurrency settings
    max_workers: int = Field(
        default=32,
        ge=1,
        le=512,
        description="Size of the thread pool running probes"
    )

    # Alert settings
    alert_cooldown: int = Field(
        default=3600,
        ge=0,
        le=604800,
        description="Seconds before an ongoing escalation is delivered again"
    )
    recovery_alert: bool = Field(
        default=True,
        description="Send a notice when an escalation clears"
    )

    # Checks file
    checks_file: Path = Field(
        default=Path("checks.yaml"),
        description="YAML file listing notifiers and probes"
    )

    # Heartbeat
    heartbeat_interval: int = Field(
        default=600,
        ge=10,
        le=86400,
        description="Seconds between heartbeat log lines"
    )

    @property
    def effective_cycle_timeout(self) -> float:
        """How long one cycle waits for the probes it started."""
        return float(self.cycle_timeout or self.check_interval)


class DatabaseSettings(BaseSettingsConfig):
    """
    Results Database Configuration Settings

    The results sink is an SQLite file accessed through SQLAlchemy's
    async engine (aiosqlite driver).
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        extra="ignore"
    )

    enabled: bool = Field(
        default=True,
        description="Persist probe results and alert events"
    )
    sqlite_path: Path = Field(
        default=Path("data/probemon.db"),
        description="Path to SQLite database file"
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL statements (debug mode)"
    )
    history_retention_days: int = Field(
        default=30,
        ge=1,
        le=3650,
        description="Days of probe results to keep"
    )
    cleanup_interval: int = Field(
        default=86400,
        ge=60,
        description="Seconds between history cleanup runs"
    )

    @property
    def url(self) -> str:
        """Generate database URL based on configuration."""
        return f"sqlite+aiosqlite:///{self.sqlite_path}"

    @field_validator("sqlite_path")
    @classmethod
    def validate_sqlite_path(cls, v: Path) -> Path:
        """Validate and normalize SQLite path."""
        if not v.suffix:
            v = v.with_suffix(".db")
        return v


class WebSettings(BaseSettingsConfig):
    """
    Status Server Configuration Settings

    Read-only aiohttp server exposing probe status and escalations.
    """

    model_config = SettingsConfigDict(
        env_prefix="WEB_",
        env_file=".env",
        extra="ignore"
    )

    enabled: bool = Field(
        default=True,
        description="Start the status server"
    )
    host: str = Field(
        default="127.0.0.1",
        description="Status server bind address"
    )
    port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Status server port"
    )


class LoggingSettings(BaseSettingsConfig):
    """
    Logging Configuration Settings

    Console and file logging through loguru, with rotation,
    retention and optional JSON serialization.
    """

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore"
    )

    # General settings
    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Minimum logging level"
    )

    # Console logging
    console_enabled: bool = Field(
        default=True,
        description="Enable console logging"
    )
    console_colored: bool = Field(
        default=True,
        description="Enable colored console output"
    )

    # File logging
    file_enabled: bool = Field(
        default=False,
        description="Enable file logging"
    )
    file_path: Path = Field(
        default=Path("logs/probemon.log"),
        description="Log file path"
    )
    file_rotation: str = Field(
        default="10 MB",
        description="Log rotation size (e.g., '10 MB', '1 day')"
    )
    file_retention: str = Field(
        default="30 days",
        description="Log retention period"
    )
    file_compression: str = Field(
        default="gz",
        description="Compression format for rotated logs"
    )

    # Error logging (separate file for errors)
    error_file_enabled: bool = Field(
        default=False,
        description="Enable separate error log file"
    )
    error_file_path: Path = Field(
        default=Path("logs/errors.log"),
        description="Error log file path"
    )

    # JSON logging
    json_enabled: bool = Field(
        default=False,
        description="Serialize file log records as JSON"
    )


class NotifierSettings(BaseSettingsConfig):
    """
    Global Notifier Settings

    Every channel configured here becomes a notifier bound to all
    probes defined in the checks file.
    """

    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_",
        env_file=".env",
        extra="ignore"
    )

    telegram_bot_token: Optional[SecretStr] = Field(
        default=None,
        description="Telegram bot token"
    )
    telegram_chat_id: Optional[str] = Field(
        default=None,
        description="Telegram chat receiving alerts"
    )
    ntfy_url: str = Field(
        default="https://ntfy.sh",
        description="ntfy server base URL"
    )
    ntfy_topic: Optional[str] = Field(
        default=None,
        description="ntfy topic receiving alerts"
    )
    pushover_user: Optional[str] = Field(
        default=None,
        description="Pushover user key"
    )
    pushover_token: Optional[SecretStr] = Field(
        default=None,
        description="Pushover application token"
    )
    timeout: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Delivery timeout in seconds"
    )

    @model_validator(mode="after")
    def validate_pairs(self) -> "NotifierSettings":
        """Credentials that only work together must be set together."""
        if bool(self.telegram_bot_token) != bool(self.telegram_chat_id):
            raise ValueError("telegram_bot_token and telegram_chat_id must be set together")
        if bool(self.pushover_user) != bool(self.pushover_token):
            raise ValueError("pushover_user and pushover_token must be set together")
        return self


class Settings(BaseSettingsConfig):
    """
    Main Settings Class

    Aggregates all settings sections and provides the main
    configuration interface for the application.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Application info
    app_name: str = Field(
        default="Probemon",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )

    # Nested settings
    monitoring: MonitoringSettings = Field(
        default_factory=MonitoringSettings
    )
    database: DatabaseSettings = Field(
        default_factory=DatabaseSettings
    )
    web: WebSettings = Field(
        default_factory=WebSettings
    )
    logging: LoggingSettings = Field(
        default_factory=LoggingSettings
    )
    notifiers: NotifierSettings = Field(
        default_factory=NotifierSettings
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.environment == Environment.TESTING

    @model_validator(mode="after")
    def configure_for_environment(self) -> "Settings":
        """Apply environment-specific configuration."""
        if self.is_production:
            self.debug = False
            self.database.echo = False
        elif self.debug and self.logging.level == LogLevel.INFO:
            self.logging.level = LogLevel.DEBUG

        return self

    def to_dict(self, *, exclude_secrets: bool = True) -> Dict[str, Any]:
        """Convert settings to dictionary."""
        data = self.model_dump(mode="json")

        if exclude_secrets:
            def remove_secrets(obj: Any) -> Any:
                if isinstance(obj, dict):
                    return {
                        k: remove_secrets(v)
                        for k, v in obj.items()
                        if "password" not in k.lower()
                        and "secret" not in k.lower()
                        and "token" not in k.lower()
                    }
                elif isinstance(obj, list):
                    return [remove_secrets(item) for item in obj]
                return obj

            data = remove_secrets(data)

        return data


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    This function is cached to ensure a single settings instance
    is used throughout the application lifecycle.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
