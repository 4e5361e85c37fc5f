"""Dependency providers and settings management."""

from functools import lru_cache
from typing import Literal, Optional

from fastapi import Depends
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.orm import Session

from .database import get_db


class Settings(BaseSettings):
    """Application settings loaded from environment or .env."""

    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"
    ENVIRONMENT: str = "development"
    SENTRY_DSN: Optional[str] = None

    # Redis Configuration (only used when METRICS_CACHE_BACKEND=redis)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Read API cache
    METRICS_CACHE_BACKEND: Literal["memory", "redis"] = "memory"
    METRICS_CACHE_TTL_SECONDS: int = 300  # 5 minutes

    # Collection / backfill limits
    RECOLLECTION_GUARD_DAYS: int = 7  # 0 disables the guard
    BACKFILL_MAX_DAYS: int = 366
    ACTIVITY_MAX_DAYS: int = 365

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()  # type: ignore[call-arg]


def get_metrics_reader(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Build the cached read API for the current request.

    The cache backend is process-wide (see dailymetrics.state); the reader is
    bound to the request's session so a miss queries through it.
    """
    from . import state
    from .services.metrics_cache import CachedMetricsReader
    from .services.metrics_reader import MetricsReader

    reader = MetricsReader(
        db,
        registry=state.get_registry(db),
        activity_max_days=settings.ACTIVITY_MAX_DAYS,
    )
    return CachedMetricsReader(
        reader,
        backend=state.get_cache_backend(),
        ttl_seconds=settings.METRICS_CACHE_TTL_SECONDS,
    )
