"""Central configuration for the user catalog service.

This module uses Pydantic Settings for validation and env management.
"""
from __future__ import annotations

from enum import Enum
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class DatabaseSettings(BaseSettings):
    """Database configuration."""
    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore",
    )

    url: str = Field(
        default="sqlite+aiosqlite:///./catalog.db",
        description="Async database connection URL",
    )
    echo: bool = Field(default=False)


class SourceSettings(BaseSettings):
    """External user source (paginated REST API)."""
    model_config = SettingsConfigDict(env_prefix="SOURCE_", extra="ignore")

    base_url: str = Field(default="https://dummyjson.com", description="Source base address")
    page_size: int = Field(default=30, ge=1, le=500, description="Records requested per page")
    timeout: float = Field(default=10.0, gt=0, description="Per-request timeout in seconds")


class RetrySettings(BaseSettings):
    """Retry policy for the ingestion pipeline."""
    model_config = SettingsConfigDict(env_prefix="RETRY_", extra="ignore")

    max_attempts: int = Field(default=3, ge=1, le=20)
    delay: float = Field(default=1.0, ge=0.0, le=60.0, description="Fixed wait between attempts (seconds)")


class IngestionSettings(BaseSettings):
    """Ingestion behaviour at application startup."""
    model_config = SettingsConfigDict(env_prefix="INGESTION_", extra="ignore")

    load_on_startup: bool = Field(default=True)


class LoggingSettings(BaseSettings):
    """Logging configuration."""
    model_config = SettingsConfigDict(env_prefix="LOG_", extra="ignore")

    level: str = Field(default="INFO")
    format: Literal["text", "json"] = Field(default="text")
    file: str | None = Field(default=None)

    @field_validator("level")
    @classmethod
    def upper_level(cls, v: str) -> str:
        return v.upper()


class Settings(BaseSettings):
    """Main application settings."""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Environment = Field(default=Environment.DEVELOPMENT)
    debug: bool = Field(default=False)
    app_name: str = Field(default="User Catalog")
    version: str = Field(default="0.1.0")
    allowed_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:3001"],
    )

    # Sub-configs
    db: DatabaseSettings = Field(default_factory=DatabaseSettings)
    source: SourceSettings = Field(default_factory=SourceSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
