"""Pytest configuration for dailymetrics integration tests

WHAT: Shared fixtures for collection, backfill, read API and HTTP tests
WHY: Every test gets a fresh in-memory database and fresh process state
     (catalog + read cache), so cached reads never leak between tests
REFERENCES:
    - dailymetrics/main.py: FastAPI application
    - dailymetrics/database.py: Database configuration
    - dailymetrics/state.py: Process-wide registry and cache
"""

import os
from datetime import datetime, timezone
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from dailymetrics.tests.helpers import FixedClock

# Set test environment before any dailymetrics.database import
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("METRICS_CACHE_BACKEND", "memory")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379")


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def test_db_engine():
    """Create in-memory test database engine."""
    # StaticPool: TestClient runs the app in another thread, all threads must
    # share the one in-memory connection
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    from dailymetrics.models import Base
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def test_db_session(test_db_engine) -> Generator[Session, None, None]:
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)

    session = SessionLocal()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def reset_state():
    """Fresh catalog and read cache for every test."""
    from dailymetrics import state
    from dailymetrics.deps import get_settings

    get_settings.cache_clear()
    state.reset()
    yield
    state.reset()


# ============================================================================
# Application & Client Fixtures
# ============================================================================

@pytest.fixture
def app(test_db_session):
    """Create FastAPI test application."""
    from dailymetrics.database import get_db
    from dailymetrics.main import create_app

    test_app = create_app()

    def override_get_db():
        yield test_db_session

    test_app.dependency_overrides[get_db] = override_get_db
    return test_app


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


# ============================================================================
# Clock & Source Data Fixtures
# ============================================================================

@pytest.fixture
def clock():
    """Clock pinned to 2025-01-15 12:00 UTC."""
    return FixedClock(datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def make_source(test_db_session):
    """Factory: make_source("users"|"posts"|"comments", created_at, count=1)."""
    from dailymetrics.models import Comment, Profile, Track

    models = {"users": Profile, "posts": Track, "comments": Comment}

    def _make(kind: str, created_at: datetime, count: int = 1):
        rows = [models[kind](created_at=created_at) for _ in range(count)]
        test_db_session.add_all(rows)
        test_db_session.commit()
        return rows

    return _make
