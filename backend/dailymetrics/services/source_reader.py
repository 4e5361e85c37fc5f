"""Source data reader - COUNT queries against platform tables.

WHAT:
    The engine's only read path into the application's tables. Each metric is
    one COUNT over one source table bounded by created_at.

WHY:
    Keeps the collection engine independent of how the platform stores its
    entities: tests and alternative stores swap in another reader with the
    same two methods.

REFERENCES:
    - dailymetrics/metrics/registry.py: MetricSource / MetricShape
    - dailymetrics/services/collection_service.py: consumer
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Dict, Optional, Type

from sqlalchemy import func
from sqlalchemy.orm import Session

from dailymetrics.metrics.registry import MetricShape, MetricSource, MetricSpec
from dailymetrics.models import Base, Comment, Profile, Track
from dailymetrics.utils.dates import as_utc, day_bounds_utc

logger = logging.getLogger(__name__)


SOURCE_MODELS: Dict[MetricSource, Type[Base]] = {
    MetricSource.users: Profile,
    MetricSource.posts: Track,
    MetricSource.comments: Comment,
}


class SourceDataReader:
    """Counts source rows by creation time."""

    def __init__(self, db: Session):
        self.db = db

    def count_created_through(self, source: MetricSource, target_date: date) -> int:
        """Rows created on or before target_date (end of day, UTC)."""
        model = SOURCE_MODELS[source]
        _, day_end = day_bounds_utc(target_date)
        return self.db.query(func.count(model.id)).filter(model.created_at < day_end).scalar()

    def count_created_on(self, source: MetricSource, target_date: date) -> int:
        """Rows created during target_date (UTC)."""
        model = SOURCE_MODELS[source]
        day_start, day_end = day_bounds_utc(target_date)
        return (
            self.db.query(func.count(model.id))
            .filter(model.created_at >= day_start, model.created_at < day_end)
            .scalar()
        )

    def measure(self, spec: MetricSpec, target_date: date) -> int:
        """Compute one metric's value for target_date."""
        if spec.shape == MetricShape.cumulative:
            return self.count_created_through(spec.source, target_date)
        if spec.shape == MetricShape.incremental:
            return self.count_created_on(spec.source, target_date)
        raise ValueError(f"Unsupported metric shape: {spec.shape}")


def earliest_source_date(db: Session) -> Optional[date]:
    """First creation date across all source tables, or None when all are empty.

    Used as the default start of a full-history backfill.
    """
    earliest = None
    for model in SOURCE_MODELS.values():
        first = db.query(func.min(model.created_at)).scalar()
        if first is not None and (earliest is None or first < earliest):
            earliest = first
    if earliest is None:
        return None
    return as_utc(earliest).date()


def default_backfill_start(db: Session, today: date, fallback_days: int = 30) -> date:
    """Earliest source date, or `fallback_days` before today when there is no data."""
    earliest = earliest_source_date(db)
    if earliest is None:
        logger.info("[SOURCE] No source rows found, defaulting to %d days ago", fallback_days)
        return today - timedelta(days=fallback_days)
    return min(earliest, today)
