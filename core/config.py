"""
Application configuration management.

Uses pydantic-settings for type-safe environment variable parsing.
All configuration is centralized here so components receive their
settings by injection instead of scattering os.getenv() calls.
"""

from functools import lru_cache
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Service settings with validation and type coercion.

    Values are loaded from environment variables or .env file.
    All fields have sensible defaults for local development.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage Backend Selection
    # Options: "memory", "mongodb"
    storage_backend: Literal["memory", "mongodb"] = "memory"

    # MongoDB Configuration
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_database: str = "story_studio"

    # Illustration uploads
    upload_dir: str = "uploads"
    max_illustration_bytes: int = 5 * 1024 * 1024

    # Story feed
    feed_page_size: int = 12
    default_locale: str = "fr"

    # Autosave
    autosave_interval_seconds: int = 30

    # Query cache
    cache_ttl_seconds: int = 300

    # Mock backend
    mock_latency_seconds: float = 0.0

    debug: bool = False

    # Environment
    environment: Literal["development", "staging", "production"] = "development"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_mongodb(self) -> bool:
        """Check if using MongoDB backend."""
        return self.storage_backend == "mongodb"


class ClientPreferences(BaseModel):
    """
    Per-user client preferences.

    These used to live in browser local storage under camelCase keys;
    both spellings are accepted so a stored blob can be passed straight in.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    dark_mode: bool = Field(default=False, alias="darkMode")
    auto_save: bool = Field(default=True, alias="autoSave")
    dev_mode: bool = Field(default=False, alias="devMode")
    locale: str = "fr"

    @classmethod
    def from_storage(cls, data: dict[str, Any] | None) -> "ClientPreferences":
        """Build preferences from a stored mapping, ignoring unknown keys."""
        return cls.model_validate(data or {})


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings singleton.

    The @lru_cache ensures we only parse environment once.
    """
    return Settings()


# Convenience export for direct import
settings = get_settings()
