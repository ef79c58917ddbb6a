"""
Environment configuration — single source of truth for all settings.

Uses pydantic-settings for type-safe config with .env file support.
All values have sensible defaults for local development.

Usage:
    from floodwatch.core.config import settings
    print(settings.FULL_REFRESH_INTERVAL_S)
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables or .env file.

    Precedence: env var > .env file > default value
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ──
    APP_NAME: str = "FloodWatch"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | staging | production
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL

    # ── External weather sources ──
    TOMORROW_API_KEY: Optional[str] = None  # Tomorrow.io is skipped when unset
    TOMORROW_BASE_URL: str = "https://api.tomorrow.io/v4"
    OPEN_METEO_BASE_URL: str = "https://api.open-meteo.com/v1"
    IMD_RSS_URL: str = "https://mausam.imd.gov.in/imd_latest/contents/dist_nowcast_rss.php"
    SOURCE_TIMEOUT_S: float = 10.0
    WARNINGS_TIMEOUT_S: float = 8.0
    FORECAST_HORIZON: int = 6  # hourly entries

    # ── Zones ──
    DEFAULT_ZONE: str = "jalukbari"
    MONITORED_ZONES: List[str] = [
        "jalukbari",
        "maligaon",
        "fancy-bazar",
        "bharalumukh",
        "brahmaputra-north",
        "barpeta",
    ]

    # ── Water level model ──
    # Fraction of the danger level assumed when no gauge reading exists.
    BASELINE_DANGER_RATIO: float = 0.6

    # ── Refresh cadences (seconds) ──
    STARTUP_DELAY_S: float = 0.1
    FULL_REFRESH_INTERVAL_S: float = 15 * 60
    WARNINGS_REFRESH_INTERVAL_S: float = 30 * 60

    # ── Last-known-good cache ──
    CACHE_BACKEND: str = "file"  # file | redis
    CACHE_DIR: str = ".floodwatch_cache"
    CACHE_KEY_PREFIX: str = "weather_"
    REDIS_URL: str = "redis://localhost:6379/0"

    # ── CORS ──
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
