"""Configuration management for Keelson.

This module uses Pydantic Settings to load and validate configuration from
environment variables and .env files. Configuration is loaded once per
process and is immutable during runtime.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration settings.

    Settings are loaded from environment variables and .env files.
    All configuration values are validated at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="KEELSON_",
        case_sensitive=False,
        extra="ignore",
    )

    # Application Settings
    app_name: str = "Keelson"
    app_version: str = "0.1.0"
    environment: Literal["development", "production", "testing"] = "development"
    debug: bool = False
    api_prefix: str = "/api/v1"

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 1

    # Database Settings
    database_url: str = "sqlite+aiosqlite:///./kb_data/keelson.db"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_timeout: int = 30
    db_pool_recycle: int = 3600
    db_echo: bool = False

    # Logging Settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "console"] = "json"

    # Site Definition Settings
    definitions_path: str = "./definitions.json"
    schema_output_path: str = "./kb_data/schema.json"
    auto_sync_on_startup: bool = Field(
        default=False,
        description="Create tables and sync the type registry from definitions_path on startup",
    )

    # Content Engine Settings
    registry_cache_ttl_seconds: int = 300  # 5 minutes
    relation_depth: int = Field(
        default=2,
        ge=0,
        description="Maximum depth for recursive hydration of relation targets",
    )
    default_page_size: int = 20
    max_page_size: int = 200

    # Request Settings
    acting_user_header: str = "X-User-Id"

    @field_validator("api_prefix")
    @classmethod
    def normalize_api_prefix(cls, v: str) -> str:
        """Ensure the API prefix starts with a slash and has none trailing."""
        v = "/" + v.strip("/")
        return "" if v == "/" else v

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_sqlite(self) -> bool:
        """Check if the configured database is SQLite."""
        return self.database_url.startswith("sqlite")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: Application settings loaded from environment.
    """
    return Settings()
