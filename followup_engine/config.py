"""
Configuration management with Pydantic Settings
Loads from .env file with validation and defaults
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings with validation"""

    # Environment
    environment: str = Field(default="development", description="Environment")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Log level")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./followup.db",
        description="Lead store connection URL"
    )

    # Decision inputs
    default_aggressiveness: int = Field(
        default=5, ge=1, le=10,
        description="Aggressiveness dial used when no runtime value is stored (1-10)"
    )
    quiet_hours_timezone: Optional[str] = Field(
        default=None,
        description="IANA timezone used for the late-night hard limit"
    )
    phrase_book_path: Optional[str] = Field(
        default=None,
        description="JSON file overriding the built-in phrase lists"
    )
    runtime_settings_path: str = Field(
        default="./.cache/followup_runtime_settings.json",
        description="Runtime settings storage file"
    )

    # Lead selection
    stale_threshold_hours: float = Field(
        default=1.0, ge=0,
        description="Conversation is considered stale after this many hours"
    )
    cooldown_hours: float = Field(
        default=4.0, ge=0,
        description="Minimum hours between automated follow-ups for selection"
    )

    # Persistence retries
    persistence_max_retries: int = Field(default=3, ge=0, description="Advance/reset retries")
    persistence_retry_delay: float = Field(default=0.5, ge=0, description="Initial retry delay, seconds")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        if v not in ["development", "production", "testing"]:
            raise ValueError("Environment must be development, production, or testing")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        v = v.upper()
        if v not in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
            raise ValueError("Invalid log level")
        return v

    @field_validator("quiet_hours_timezone")
    @classmethod
    def validate_timezone(cls, v):
        if v:
            from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
            try:
                ZoneInfo(v)
            except (ZoneInfoNotFoundError, ValueError):
                raise ValueError(f"Unknown timezone: {v}")
        return v or None

    model_config = SettingsConfigDict(
        env_prefix="FOLLOWUP_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )


@lru_cache()
def get_settings() -> Settings:
    """Get engine settings"""
    return Settings()
