"""Configuration management using pydantic-settings."""

import threading
from enum import Enum
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Valid log levels
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class LatestPointerPolicy(str, Enum):
    """How the latest-timestamp pointer follows record and delete."""

    # Pointer always names the largest stored timestamp
    TRACK_MAXIMUM = "track_maximum"
    # Overwrite on every record, clear when the latest record is deleted
    LEGACY = "legacy"


class StoreSettings(BaseSettings):
    """Vital store settings."""

    model_config = SettingsConfigDict(env_prefix="STORE_")

    persist_path: Path | None = Field(
        default=None, description="SQLite snapshot path (None to keep in memory only)"
    )
    latest_policy: LatestPointerPolicy = Field(
        default=LatestPointerPolicy.TRACK_MAXIMUM,
        description="Latest pointer maintenance policy",
    )
    checkpoint_on_write: bool = Field(
        default=True, description="Persist a snapshot after each CLI mutation"
    )

    @field_validator("latest_policy", mode="before")
    @classmethod
    def normalize_latest_policy(cls, v: object) -> object:
        """Accept policy names case-insensitively."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("persist_path")
    @classmethod
    def validate_persist_path(cls, v: Path | None) -> Path | None:
        """Reject directories as snapshot targets."""
        if v is not None and v.is_dir():
            raise ValueError(f"Persist path must be a file, got directory {v}")
        return v


class AppSettings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_prefix="APP_")

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or console")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        normalized = v.upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Invalid log level '{v}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
            )
        return normalized

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format is valid."""
        normalized = v.lower()
        if normalized not in ("json", "console"):
            raise ValueError(f"Invalid log format '{v}'. Must be 'json' or 'console'")
        return normalized


class Settings(BaseSettings):
    """Combined application settings."""

    store: StoreSettings = Field(default_factory=StoreSettings)
    app: AppSettings = Field(default_factory=AppSettings)

    @classmethod
    def load(cls) -> "Settings":
        """Load settings from environment variables."""
        return cls(
            store=StoreSettings(),
            app=AppSettings(),
        )


# Global settings instance with thread-safe initialization
_settings: Settings | None = None
_settings_lock = threading.Lock()


def get_settings() -> Settings:
    """Get or create the global settings instance.

    Thread-safe singleton pattern using double-checked locking.
    """
    global _settings
    if _settings is None:
        with _settings_lock:
            # Double-check after acquiring lock
            if _settings is None:
                _settings = Settings.load()
    return _settings
