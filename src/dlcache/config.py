"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env files.
Validates fields and provides typed access to settings.
"""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CACHE_DURATION_MINUTES = 30
# Largest duration a timedelta can hold
MAX_CACHE_DURATION_MINUTES = timedelta.max // timedelta(minutes=1)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Optional:
        CACHE_DURATION_MINUTES: Freshness window in minutes (default 30)
        CACHE_DIR: Directory holding cached artifacts
        DOWNLOAD_DIR: Root for request-scoped fetch workspaces
        API_KEY: Shared secret expected in the x-api-key header
        FETCH_EXECUTABLE: External fetch tool (default yt-dlp)
        FETCH_FORMAT: Format selector passed to the fetch tool
        SINGLE_FLIGHT: Collapse concurrent misses for one URL into one fetch
        RECONCILE_ON_STARTUP: Purge files left by a previous process on init
        LOG_LEVEL: Logging level
        LOG_FILE: Optional JSON log file
        HOST / PORT: Bind address for the HTTP server
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Cache lifetime
    CACHE_DURATION_MINUTES: int = Field(
        default=DEFAULT_CACHE_DURATION_MINUTES,
        description="Minutes a cached artifact stays fresh",
    )

    # Directories
    CACHE_DIR: Path = Field(default=Path("cache"), description="Cache directory")
    DOWNLOAD_DIR: Path = Field(
        default=Path("downloads"), description="Workspace root for in-flight fetches"
    )

    # Auth
    API_KEY: str | None = Field(default=None, description="API key for x-api-key header")

    # External fetch tool
    FETCH_EXECUTABLE: str = Field(default="yt-dlp", description="Fetch executable")
    FETCH_FORMAT: str = Field(default="best", description="Format selector")

    # Behaviour switches
    SINGLE_FLIGHT: bool = Field(
        default=True, description="Share one fetch between concurrent misses"
    )
    RECONCILE_ON_STARTUP: bool = Field(
        default=True, description="Delete orphaned cache files on startup"
    )

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    LOG_FILE: Path | None = Field(default=None, description="JSON log file")

    # Server
    HOST: str = Field(default="0.0.0.0", description="Bind host")
    PORT: int = Field(default=3000, ge=1, le=65535, description="Bind port")

    @field_validator("CACHE_DURATION_MINUTES", mode="before")
    @classmethod
    def lenient_cache_duration(cls, v: Any) -> int:
        """Fall back to the default for missing, non-integer, non-positive or oversized values."""
        try:
            minutes = int(str(v).strip())
        except (TypeError, ValueError):
            return DEFAULT_CACHE_DURATION_MINUTES
        if minutes <= 0 or minutes > MAX_CACHE_DURATION_MINUTES:
            return DEFAULT_CACHE_DURATION_MINUTES
        return minutes

    @field_validator("API_KEY")
    @classmethod
    def empty_api_key_is_unset(cls, v: str | None) -> str | None:
        """Treat an empty API_KEY as "auth disabled"."""
        if v is None or not v.strip():
            return None
        return v

    @property
    def cache_ttl(self) -> timedelta:
        """Freshness window as a timedelta."""
        return timedelta(minutes=self.CACHE_DURATION_MINUTES)

    @property
    def sweep_period(self) -> timedelta:
        """Period of the background eviction sweep (half the TTL)."""
        return self.cache_ttl / 2

    @property
    def auth_enabled(self) -> bool:
        return self.API_KEY is not None

    def ensure_directories(self) -> None:
        """Create cache and download directories if they don't exist."""
        self.CACHE_DIR.mkdir(parents=True, exist_ok=True)
        self.DOWNLOAD_DIR.mkdir(parents=True, exist_ok=True)

    def redacted_display(self) -> dict[str, str | int | bool | None]:
        """Return settings with the API key redacted for display."""
        def redact(value: str | None) -> str | None:
            if value is None:
                return None
            return f"{value[:4]}...{value[-2:]}" if len(value) > 8 else "***"

        return {
            "CACHE_DURATION_MINUTES": self.CACHE_DURATION_MINUTES,
            "CACHE_DIR": str(self.CACHE_DIR),
            "DOWNLOAD_DIR": str(self.DOWNLOAD_DIR),
            "API_KEY": redact(self.API_KEY),
            "FETCH_EXECUTABLE": self.FETCH_EXECUTABLE,
            "FETCH_FORMAT": self.FETCH_FORMAT,
            "SINGLE_FLIGHT": self.SINGLE_FLIGHT,
            "RECONCILE_ON_STARTUP": self.RECONCILE_ON_STARTUP,
            "LOG_LEVEL": self.LOG_LEVEL,
            "LOG_FILE": str(self.LOG_FILE) if self.LOG_FILE else None,
            "HOST": self.HOST,
            "PORT": self.PORT,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
