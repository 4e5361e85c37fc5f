"""Backfill Service - collect a historical date range, one date at a time.

WHAT:
    Validates [start_date, end_date], then runs the collection engine for
    every date in ascending order and aggregates the per-date results.

WHY:
    - Rebuild history after a schema change or data correction
    - A failing date is recorded and skipped; later dates are still processed
    - Dates run sequentially; each one is an independent, idempotent
      collection, so a re-run only needs to cover the failed dates

SUMMARY STATUS:
    completed              every date completed
    completed_with_errors  at least one date failed, at least one completed
    failed                 every date failed
    cancelled              stopped early via cancel_event

REFERENCES:
    - dailymetrics/services/collection_service.py: per-date engine
    - dailymetrics/routers/metrics.py: POST /metrics/backfill
    - scripts/backfill_metrics.py: CLI entry point
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Union

from dailymetrics.errors import SnapshotStorageError
from dailymetrics.models import CollectionStatusEnum
from dailymetrics.services.collection_service import CollectionResult, CollectionService
from dailymetrics.telemetry import capture_exception
from dailymetrics.utils.dates import iter_dates, parse_metric_date, validate_date_range

logger = logging.getLogger(__name__)

PROGRESS_LOG_EVERY = 10  # dates


@dataclass
class BackfillSummary:
    start_date: date
    end_date: date
    total_dates: int
    dates_processed: int = 0
    failed_dates: List[date] = field(default_factory=list)
    total_metrics: int = 0
    execution_time_ms: int = 0
    cancelled: bool = False
    status: str = "completed"

    @property
    def dates_failed(self) -> int:
        return len(self.failed_dates)

    def to_dict(self) -> dict:
        return {
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "total_dates": self.total_dates,
            "dates_processed": self.dates_processed,
            "failed_dates": [d.isoformat() for d in self.failed_dates],
            "total_metrics": self.total_metrics,
            "execution_time_ms": self.execution_time_ms,
            "cancelled": self.cancelled,
            "status": self.status,
        }


@dataclass
class BackfillResult:
    """Per-date results (ascending) plus the summary."""
    summary: BackfillSummary
    results: List[CollectionResult] = field(default_factory=list)


class BackfillService:
    """
    Backfill Orchestrator.

    Parameters:
        collector: CollectionService used for every date
        max_days: Largest accepted range (inclusive day count); None = no limit
    """

    def __init__(self, collector: CollectionService, max_days: Optional[int] = None):
        self.collector = collector
        self.max_days = max_days

    def backfill(
        self,
        start_date: Union[str, date, None],
        end_date: Union[str, date, None] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> BackfillResult:
        """
        Collect every date in [start_date, end_date].

        Parameters:
            start_date: First date (required)
            end_date: Last date; None means today
            cancel_event: When set, stops before the next date

        Raises:
            MetricsValidationError: bad dates or range; nothing was collected
        """
        today = self.collector.today()
        start = parse_metric_date(start_date, field="start_date")
        end = parse_metric_date(end_date, field="end_date", default=today)
        total_dates = validate_date_range(start, end, max_days=self.max_days)

        logger.info(
            "[BACKFILL] Starting backfill: %s to %s (%d dates)",
            start.isoformat(), end.isoformat(), total_dates,
        )

        summary = BackfillSummary(start_date=start, end_date=end, total_dates=total_dates)
        results: List[CollectionResult] = []
        cancelled = False
        start_time = time.perf_counter()

        for current in iter_dates(start, end):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(
                    "[BACKFILL] Cancelled before %s after %d of %d dates",
                    current.isoformat(), len(results), total_dates,
                )
                cancelled = True
                break

            result = self._collect_one(current)
            results.append(result)
            summary.total_metrics += result.metrics_collected
            if not result.success:
                summary.failed_dates.append(current)

            if len(results) % PROGRESS_LOG_EVERY == 0:
                logger.info(
                    "[BACKFILL] Progress: %d/%d dates, %d metrics, %d failed dates",
                    len(results), total_dates, summary.total_metrics, summary.dates_failed,
                )

        summary.dates_processed = len(results)
        summary.execution_time_ms = int((time.perf_counter() - start_time) * 1000)
        summary.cancelled = cancelled
        summary.status = self._summary_status(summary)

        logger.info(
            "[BACKFILL] Finished backfill %s to %s: status=%s, dates=%d, failed=%d, metrics=%d, time=%dms",
            start.isoformat(), end.isoformat(), summary.status, summary.dates_processed,
            summary.dates_failed, summary.total_metrics, summary.execution_time_ms,
        )
        return BackfillResult(summary=summary, results=results)

    def _collect_one(self, current: date) -> CollectionResult:
        try:
            return self.collector.collect(current)
        except SnapshotStorageError as e:
            logger.error("[BACKFILL] Storage failure on %s, continuing: %s", current.isoformat(), e.message)
            return getattr(e, "result", None) or CollectionResult.failed_for(current, e)
        except Exception as e:
            logger.exception("[BACKFILL] Collection failed on %s, continuing", current.isoformat())
            capture_exception(e, extra={"operation": "backfill", "collection_date": current.isoformat()})
            self.collector.db.rollback()
            return CollectionResult.failed_for(current, e)

    @staticmethod
    def _summary_status(summary: BackfillSummary) -> str:
        if summary.cancelled:
            return "cancelled"
        if summary.dates_failed == 0:
            return CollectionStatusEnum.completed.value
        if summary.dates_failed == summary.dates_processed:
            return CollectionStatusEnum.failed.value
        return "completed_with_errors"


def backfill_daily_metrics(
    db,
    start_date: Union[str, date, None],
    end_date: Union[str, date, None] = None,
    max_days: Optional[int] = None,
) -> BackfillResult:
    """Backfill a date range (convenience wrapper for scripts)."""
    return BackfillService(CollectionService(db), max_days=max_days).backfill(start_date, end_date)
