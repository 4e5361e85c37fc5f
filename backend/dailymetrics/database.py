"""Database session and base configuration.

WHAT:
    Provides the SQLAlchemy engine and session factory used by the collection
    engine, the read API and the operational scripts.
    Exposes a FastAPI dependency and a context manager for database access.

WHY:
    - Collection runs synchronously inside one invocation, so a sync engine is
      all the service needs (no background threads, no async driver).
    - The same factory serves HTTP requests, CLI backfills and tests.

ARCHITECTURE:
    ┌──────────────────┐
    │  Sync Engine     │
    │  (psycopg2)      │
    └────────┬─────────┘
             │
    ┌────────▼─────────┐
    │  SessionLocal    │
    └───┬──────────┬───┘
        │          │
    get_db()   get_sync_session()
    (FastAPI)  (scripts, workers)

REFERENCES:
    - https://docs.sqlalchemy.org/en/20/orm/session_basics.html
    - dailymetrics/routers/metrics.py (consumer of get_db)
"""

import os
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker


# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================

def _get_database_url() -> str:
    """Get DATABASE_URL from environment, loading .env if needed.

    Returns:
        Database connection string

    Raises:
        RuntimeError: If DATABASE_URL is not configured
    """
    from dailymetrics.utils.env import load_env_file, require_env

    if not os.getenv("DATABASE_URL"):
        # Attempt to load from local .env for developer convenience
        load_env_file()

    database_url = require_env("DATABASE_URL")

    if database_url.startswith("postgres://"):
        # Heroku-style URL
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    return database_url


DATABASE_URL = _get_database_url()


# =============================================================================
# ENGINE
# =============================================================================

# Connection pool configuration:
# - pool_size / max_overflow: collection and backfill are sequential, the API is
#   the only concurrent consumer
# - pool_recycle: recreate connections after 1 hour
# - pool_pre_ping: surface an unreachable store at checkout, not mid-run
#
# NOTE: SQLite engines (tests/dev) do not support pool_size/max_overflow.
if DATABASE_URL.startswith("sqlite"):
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
    )
else:
    engine = create_engine(
        DATABASE_URL,
        pool_size=5,
        max_overflow=10,
        pool_recycle=3600,
        pool_pre_ping=True,
    )

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


# =============================================================================
# BASE MODEL (imported from models for single registry)
# =============================================================================

from .models import Base  # noqa: E402


# =============================================================================
# FASTAPI DEPENDENCY
# =============================================================================

def get_db() -> Generator[Session, None, None]:
    """Yield a database session for FastAPI dependency injection.

    Yields:
        SQLAlchemy Session instance

    Example:
        @router.get("/metrics")
        def list_metrics(db: Session = Depends(get_db)):
            return db.query(DailyMetric).all()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# =============================================================================
# CONTEXT MANAGER (for non-FastAPI usage)
# =============================================================================

@contextmanager
def get_sync_session() -> Generator[Session, None, None]:
    """Context manager for sessions outside FastAPI.

    WHAT:
        Creates a session with automatic cleanup.

    WHY:
        For the collection/backfill scripts where FastAPI dependency
        injection isn't available.

    Example:
        with get_sync_session() as db:
            collect_daily_metrics(db, date(2025, 1, 10))
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
