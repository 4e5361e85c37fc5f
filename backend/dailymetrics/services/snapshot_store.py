"""Snapshot Store - data access for daily_metrics.

WHAT:
    Upserts one snapshot per (metric_date, metric_type, metric_category) and
    answers the read queries the Read API needs.

WHY:
    The unique key plus INSERT .. ON CONFLICT DO UPDATE makes collection
    idempotent and gives last-writer-wins when two runs overlap on one date.

REFERENCES:
    - dailymetrics/models.py:DailyMetric
    - dailymetrics/services/collection_service.py (only writer)
    - dailymetrics/services/metrics_reader.py (reader)
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dailymetrics.errors import SnapshotStorageError
from dailymetrics.models import DailyMetric
from dailymetrics.utils.sql import dialect_insert

logger = logging.getLogger(__name__)


def upsert_snapshot(
    db: Session,
    metric_date: date,
    metric_type: str,
    metric_category: str,
    value: Any,
    collected_at: datetime,
    metadata: Optional[Dict[str, Any]] = None,
) -> None:
    """Write one snapshot and commit it.

    Each snapshot is its own transaction so a later failure in the same run
    cannot roll back metrics that were already written.

    Raises:
        SnapshotStorageError: the insert or commit failed (session rolled back)
    """
    snapshot_data = {
        "metric_date": metric_date,
        "metric_type": metric_type,
        "metric_category": metric_category,
        "value": Decimal(value),
        "metadata": metadata or {},
        "collection_timestamp": collected_at,
    }

    try:
        stmt = dialect_insert(db, DailyMetric).values(**snapshot_data)
        stmt = stmt.on_conflict_do_update(
            index_elements=["metric_date", "metric_type", "metric_category"],
            set_={
                "value": stmt.excluded.value,
                "metadata": stmt.excluded["metadata"],
                "collection_timestamp": stmt.excluded.collection_timestamp,
            },
        )
        db.execute(stmt)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise SnapshotStorageError(
            f"Failed to write snapshot {metric_category} for {metric_date.isoformat()}",
            f"{type(e).__name__}: {e}",
        ) from e


def fetch_snapshots(
    db: Session,
    start_date: date,
    end_date: date,
    categories: Optional[Sequence[str]] = None,
    types: Optional[Sequence[str]] = None,
) -> List[DailyMetric]:
    """Snapshots in [start_date, end_date], ascending by date then category."""
    query = db.query(DailyMetric).filter(
        DailyMetric.metric_date >= start_date,
        DailyMetric.metric_date <= end_date,
    )
    if categories:
        query = query.filter(DailyMetric.metric_category.in_(list(categories)))
    if types:
        query = query.filter(DailyMetric.metric_type.in_(list(types)))
    return query.order_by(
        DailyMetric.metric_date.asc(),
        DailyMetric.metric_type.asc(),
        DailyMetric.metric_category.asc(),
    ).all()


def fetch_latest_per_category(
    db: Session,
    categories: Sequence[str],
) -> Dict[str, Tuple[date, Decimal]]:
    """For each category, (metric_date, value) of its most recent snapshot.

    Categories with no snapshot are absent from the result.
    """
    if not categories:
        return {}

    latest = (
        db.query(
            DailyMetric.metric_category.label("metric_category"),
            func.max(DailyMetric.metric_date).label("latest_date"),
        )
        .filter(DailyMetric.metric_category.in_(list(categories)))
        .group_by(DailyMetric.metric_category)
        .subquery()
    )

    rows = (
        db.query(DailyMetric.metric_category, DailyMetric.metric_date, DailyMetric.value)
        .join(
            latest,
            (DailyMetric.metric_category == latest.c.metric_category)
            & (DailyMetric.metric_date == latest.c.latest_date),
        )
        .order_by(DailyMetric.metric_type.asc())
        .all()
    )

    result: Dict[str, Tuple[date, Decimal]] = {}
    for category, metric_date, value in rows:
        result.setdefault(category, (metric_date, value))
    return result


def count_snapshots_for_date(db: Session, metric_date: date) -> int:
    return (
        db.query(func.count(DailyMetric.id))
        .filter(DailyMetric.metric_date == metric_date)
        .scalar()
    )
