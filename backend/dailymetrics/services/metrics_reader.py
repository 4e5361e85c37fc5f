"""
Metrics Reader
==============

Read-only queries over daily_metrics and metric_collection_log for
dashboards. Wrapped by CachedMetricsReader (metrics_cache.py) in the API.

WHAT:
    - fetch_metrics: snapshots in a date range, optional category/type filters
    - fetch_current_metrics: latest value per known category, 0 when never collected
    - fetch_activity_data: trailing N days of incremental metrics, zero-filled
    - get_collection_status: most recent run with its duration
    - list_definitions / recent_runs: catalog and run history

WHY:
    Dashboards never touch source tables; everything they show comes from
    snapshots, so history stays stable after source data changes.

REFERENCES:
    - dailymetrics/services/snapshot_store.py
    - dailymetrics/services/collection_log.py
    - dailymetrics/routers/metrics.py
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Union

from sqlalchemy.orm import Session

from dailymetrics.errors import MetricsValidationError
from dailymetrics.metrics.registry import MetricRegistry, MetricShape
from dailymetrics.models import MetricCollectionLog, utcnow
from dailymetrics.schemas import (
    ActivityPoint,
    CollectionStatusOut,
    CurrentMetricsView,
    DailyMetricOut,
    MetricDefinitionOut,
)
from dailymetrics.services import collection_log, snapshot_store
from dailymetrics.utils.dates import as_utc, iter_dates, parse_metric_date, validate_date_range

logger = logging.getLogger(__name__)

DEFAULT_ACTIVITY_DAYS = 30


class MetricsReader:
    """Read API over the snapshot store and run log."""

    def __init__(
        self,
        db: Session,
        registry: Optional[MetricRegistry] = None,
        activity_max_days: Optional[int] = 365,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.registry = registry or MetricRegistry.builtin()
        self.activity_max_days = activity_max_days
        self.clock = clock

    def fetch_metrics(
        self,
        start_date: Union[str, date],
        end_date: Union[str, date],
        categories: Optional[Sequence[str]] = None,
        types: Optional[Sequence[str]] = None,
    ) -> List[DailyMetricOut]:
        """Snapshots in [start_date, end_date], ascending by date.

        Returns an empty list when nothing matches.

        Raises:
            MetricsValidationError: missing/invalid dates or start after end
        """
        start = parse_metric_date(start_date, field="start_date")
        end = parse_metric_date(end_date, field="end_date")
        validate_date_range(start, end)

        rows = snapshot_store.fetch_snapshots(self.db, start, end, categories=categories, types=types)
        return [
            DailyMetricOut(
                metric_date=row.metric_date,
                metric_type=row.metric_type,
                metric_category=row.metric_category,
                value=float(row.value),
                collection_timestamp=as_utc(row.collection_timestamp),
            )
            for row in rows
        ]

    def fetch_current_metrics(self) -> CurrentMetricsView:
        """Latest snapshot value for every known category."""
        categories = self.registry.categories()
        latest = snapshot_store.fetch_latest_per_category(self.db, categories)

        values: Dict[str, float] = {}
        as_of: Dict[str, Optional[date]] = {}
        for category in categories:
            if category in latest:
                metric_date, value = latest[category]
                values[category] = float(value)
                as_of[category] = metric_date
            else:
                values[category] = 0.0
                as_of[category] = None
        return CurrentMetricsView(values=values, as_of=as_of)

    def fetch_activity_data(self, days: int = DEFAULT_ACTIVITY_DAYS) -> List[ActivityPoint]:
        """
        Incremental metrics for the trailing `days` dates, today included.

        Always returns exactly `days` consecutive points in ascending order;
        dates (or categories) without a snapshot are 0.
        """
        if isinstance(days, bool) or not isinstance(days, int) or days < 1:
            raise MetricsValidationError("Invalid days", f"days must be a positive integer, got {days!r}")
        if self.activity_max_days is not None and days > self.activity_max_days:
            raise MetricsValidationError(
                "Invalid days",
                f"days must be at most {self.activity_max_days}, got {days}",
            )

        end = self.clock().date()
        start = end - timedelta(days=days - 1)
        categories = [s.metric_category for s in self.registry.active_by_shape(MetricShape.incremental)]

        by_date: Dict[date, Dict[str, float]] = {
            d: {category: 0.0 for category in categories} for d in iter_dates(start, end)
        }
        if categories:
            for row in snapshot_store.fetch_snapshots(self.db, start, end, categories=categories):
                by_date[row.metric_date][row.metric_category] = float(row.value)

        return [ActivityPoint(date=d, values=values) for d, values in by_date.items()]

    def get_collection_status(self) -> Optional[CollectionStatusOut]:
        """Most recent run by started_at, or None."""
        run = collection_log.latest_run(self.db)
        if run is None:
            return None
        return self._run_out(run)

    def recent_runs(self, limit: int = 10) -> List[CollectionStatusOut]:
        if limit < 1 or limit > 100:
            raise MetricsValidationError("Invalid limit", f"limit must be between 1 and 100, got {limit}")
        return [self._run_out(run) for run in collection_log.recent_runs(self.db, limit=limit)]

    def list_definitions(self) -> List[MetricDefinitionOut]:
        return [
            MetricDefinitionOut(
                metric_type=spec.metric_type,
                metric_category=spec.metric_category,
                display_name=spec.display_name,
                description=spec.description,
                unit=spec.unit,
                format_pattern=spec.format_pattern,
                source=spec.source.value,
                shape=spec.shape.value,
                is_active=spec.is_active,
            )
            for spec in self.registry.all()
        ]

    def _run_out(self, run: MetricCollectionLog) -> CollectionStatusOut:
        started_at = as_utc(run.started_at)
        completed_at = as_utc(run.completed_at)
        finished = completed_at or self.clock()
        duration_ms = max(int((finished - started_at).total_seconds() * 1000), 0)
        return CollectionStatusOut(
            id=run.id,
            collection_date=run.collection_date,
            status=run.status,
            metrics_collected=run.metrics_collected,
            started_at=started_at,
            completed_at=completed_at,
            duration_ms=duration_ms,
            error_message=run.error_message,
            error_details=run.error_details,
        )
