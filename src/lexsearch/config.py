from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from lexsearch.exceptions import ConfigError


class AppConfig(BaseModel):
    """Application-specific configuration values."""

    name: str = "lexsearch"
    env: str = "development"
    log_level: str = "INFO"
    # Render log lines as JSON (production) or as key=value console output
    log_json: bool = False


class SearchConfig(BaseModel):
    """Search engine defaults applied when a call does not override them."""

    max_results: int = Field(default=50, ge=1)
    min_relevance: float = Field(default=0.1, ge=0.0, le=1.0)
    fuzzy_search: bool = True
    fuzzy_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    fuzzy_timeout: float = Field(default=2.0, gt=0.0)  # seconds
    query_cache_size: int = Field(default=100, ge=1)
    # search_with_fallback() relaxes options below this many results
    minimum_desired_results: int = Field(default=10, ge=0)


class CacheConfig(BaseModel):
    """Tiered cache configuration values."""

    default_ttl: float = Field(default=3600.0, gt=0.0)  # seconds
    max_entries: int = Field(default=50, ge=1)
    use_compression: bool = True
    compression_threshold: int = Field(default=1024, ge=0)  # bytes
    cleanup_interval: float = Field(default=300.0, gt=0.0)  # seconds
    # SQLAlchemy URL for the durable tier, e.g. "sqlite:///cache.db"
    durable_url: Optional[str] = None
    durable_max_bytes: int = Field(default=5 * 1024 * 1024, ge=0)
    durable_timeout: float = Field(default=2.0, gt=0.0)  # seconds


class FeedbackConfig(BaseModel):
    """Feedback ranking configuration values."""

    decay_factor: float = Field(default=0.95, gt=0.0, le=1.0)
    max_score: float = Field(default=1000.0, gt=0.0)
    default_boost: float = 10.0
    recommend_threshold: float = 50.0
    durable_timeout: float = Field(default=2.0, gt=0.0)  # seconds


class Settings(BaseSettings):
    """Top-level settings loaded from environment variables and .env only."""

    model_config = SettingsConfigDict(
        env_prefix="LEXSEARCH_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    app: AppConfig = AppConfig()
    search: SearchConfig = SearchConfig()
    cache: CacheConfig = CacheConfig()
    feedback: FeedbackConfig = FeedbackConfig()


def load_settings() -> Settings:
    """Load settings from environment variables and .env only.

    Raises ``ConfigError`` when a value fails validation.
    """
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as exc:
        raise ConfigError(f"invalid lexsearch settings: {exc}") from exc
