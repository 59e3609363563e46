"""
Configuration management using Pydantic Settings.

All configuration values are loaded from environment variables
with sensible defaults where appropriate.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Project root (where the .env file is located)
# This file is at: /path/to/praetor-monitor/praetor_monitor/core/config.py
ROOT_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE = ROOT_DIR / ".env"

# Load .env into environment for nested settings models
from dotenv import load_dotenv
load_dotenv(ENV_FILE)


class AppSettings(BaseSettings):
    """Application-level configuration."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_prefix="APP_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    env: Literal["development", "staging", "production"] = "development"
    name: str = "praetor-monitor"
    version: str = "0.1.0"
    debug: bool = False


class PlatformSettings(BaseSettings):
    """Automation platform API configuration."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_prefix="PLATFORM_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    base_url: str = "http://localhost:8080"
    token: str = ""
    timeout_seconds: float = Field(default=10.0, gt=0)
    organization_id: int = 1

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the base URL so endpoint paths join cleanly."""
        return v.rstrip("/")


class PollSettings(BaseSettings):
    """Polling cadence for the job list and the run log tail."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_prefix="POLL_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    jobs_interval: float = Field(default=2.0, gt=0)
    run_interval: float = Field(default=2.0, gt=0)
    # Run fetches applied after a terminal job status before the tail stops
    trailing_fetches: int = Field(default=2, ge=1)


class LogSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_prefix="LOG_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    level: str = "INFO"
    format: Literal["json", "text"] = "text"
    path: Optional[str] = None


class Settings(BaseSettings):
    """Main settings class that aggregates all configuration sections."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app: AppSettings = Field(default_factory=AppSettings)
    platform: PlatformSettings = Field(default_factory=PlatformSettings)
    poll: PollSettings = Field(default_factory=PollSettings)
    log: LogSettings = Field(default_factory=LogSettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
