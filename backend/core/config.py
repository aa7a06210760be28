"""
Application configuration management.

This module defines a ``Settings`` dataclass that reads its values from
environment variables at instantiation time.  Each configuration option
has a reasonable default which can be overridden by setting the
corresponding environment variable.  Construct a fresh ``Settings()`` in
tests to pick up patched environment variables.
"""

from dataclasses import dataclass, field
import os
from typing import List, Optional


def _split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    """Configuration values loaded from environment variables with defaults."""

    # Application settings
    ENVIRONMENT: str = field(default_factory=lambda: os.getenv("ENVIRONMENT", "development"))
    PORT: int = field(default_factory=lambda: int(os.getenv("PORT", "3000")))
    DEBUG: bool = field(init=False)
    LOG_LEVEL: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    APP_VERSION: str = "1.0.0"

    # External news API.  Without a key every request to the upstream
    # fails and the aggregator serves placeholder articles instead.
    NEWS_API_KEY: Optional[str] = field(default_factory=lambda: os.getenv("NEWS_API_KEY"))
    NEWS_API_BASE_URL: str = field(default_factory=lambda: os.getenv("NEWS_API_BASE_URL", "https://newsapi.org/v2"))
    NEWS_API_TIMEOUT_SECONDS: float = field(default_factory=lambda: float(os.getenv("NEWS_API_TIMEOUT_SECONDS", "10")))

    # Shared deadline for the whole personalized-news fan-out
    AGGREGATION_TIMEOUT_SECONDS: float = field(default_factory=lambda: float(os.getenv("AGGREGATION_TIMEOUT_SECONDS", "30")))

    # Database
    DATABASE_PATH: str = field(default_factory=lambda: os.getenv("DATABASE_PATH", "./data/news_aggregator.db"))

    # Cache settings
    CACHE_RETENTION_HOURS: int = field(default_factory=lambda: int(os.getenv("CACHE_RETENTION_HOURS", "6")))
    CACHE_REFRESH_INTERVAL_MINUTES: int = field(default_factory=lambda: int(os.getenv("CACHE_REFRESH_INTERVAL_MINUTES", "120")))

    # Sessions
    SESSION_TTL_DAYS: int = field(default_factory=lambda: int(os.getenv("SESSION_TTL_DAYS", "7")))

    # News feed sizes
    ARTICLES_PER_CATEGORY: int = field(default_factory=lambda: int(os.getenv("ARTICLES_PER_CATEGORY", "5")))
    TRENDING_ARTICLE_COUNT: int = field(default_factory=lambda: int(os.getenv("TRENDING_ARTICLE_COUNT", "6")))

    # Profile fallbacks used when a user has not filled in their location
    DEFAULT_CITY: str = field(default_factory=lambda: os.getenv("DEFAULT_CITY", "San Francisco"))
    DEFAULT_STATE: str = field(default_factory=lambda: os.getenv("DEFAULT_STATE", "CA"))
    DEFAULT_COUNTRY: str = field(default_factory=lambda: os.getenv("DEFAULT_COUNTRY", "US"))
    DEFAULT_CAREER_FIELD: str = field(default_factory=lambda: os.getenv("DEFAULT_CAREER_FIELD", "business"))
    DEFAULT_TIMEZONE: str = field(default_factory=lambda: os.getenv("DEFAULT_TIMEZONE", "America/Los_Angeles"))

    # IP geolocation lookup backing /api/location
    GEOIP_API_URL: str = field(default_factory=lambda: os.getenv("GEOIP_API_URL", "http://ip-api.com/json"))
    GEOIP_TIMEOUT_SECONDS: float = field(default_factory=lambda: float(os.getenv("GEOIP_TIMEOUT_SECONDS", "5")))

    # CORS
    CORS_ORIGINS: List[str] = field(default_factory=lambda: _split_csv(os.getenv("CORS_ORIGINS")) or ["*"])

    def __post_init__(self) -> None:
        self.DEBUG = self.ENVIRONMENT.lower() == "development"

    @property
    def is_development(self) -> bool:
        """Return True if the environment is set to development."""
        return self.ENVIRONMENT.lower() == "development"

    @property
    def has_news_api_key(self) -> bool:
        return bool(self.NEWS_API_KEY)


settings = Settings()
