"""Collection Service - daily metric snapshots from live source data.

WHAT:
    Computes every active catalog metric for one target date and upserts the
    values into daily_metrics, logging the invocation in metric_collection_log.

WHY:
    - One entry point for the HTTP trigger, the backfill orchestrator and the
      CLI scripts
    - Per-metric isolation: one failing source query is logged and counted,
      the remaining metrics are still collected and written
    - Idempotent per date: re-running with unchanged source data leaves the
      snapshot store in the same state

RUN LIFECYCLE:
    validate date ──▶ open run (running) ──▶ measure + upsert each metric
                                                   │
                        finalize run (completed | failed) ◀──┘

    - completed: every active metric was written
    - failed: at least one metric could not be computed, or a snapshot write
      failed (SnapshotStorageError is re-raised after the run is finalized)

REFERENCES:
    - dailymetrics/metrics/registry.py: catalog
    - dailymetrics/services/source_reader.py: source COUNT queries
    - dailymetrics/services/snapshot_store.py: upserts
    - dailymetrics/services/collection_log.py: run log
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from dailymetrics.errors import (
    MetricComputationError,
    RecollectionNotAllowedError,
    SnapshotStorageError,
)
from dailymetrics.metrics.registry import MetricRegistry, MetricSpec
from dailymetrics.models import CollectionStatusEnum, utcnow
from dailymetrics.services import collection_log, snapshot_store
from dailymetrics.services.source_reader import SourceDataReader
from dailymetrics.telemetry import capture_exception
from dailymetrics.utils.dates import parse_metric_date

logger = logging.getLogger(__name__)


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class MetricFailure:
    """One metric that could not be collected in a run."""
    metric_type: str
    metric_category: str
    error_type: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "metric_type": self.metric_type,
            "metric_category": self.metric_category,
            "error_type": self.error_type,
            "message": self.message,
        }


@dataclass
class CollectionResult:
    """Outcome of one collection invocation."""
    collection_date: date
    status: CollectionStatusEnum
    metrics_collected: int = 0
    metrics_failed: int = 0
    execution_time_ms: int = 0
    run_id: Optional[UUID] = None
    values: Dict[str, Decimal] = field(default_factory=dict)
    errors: List[MetricFailure] = field(default_factory=list)
    error: Optional[str] = None  # invocation-level failure (storage), if any

    @property
    def success(self) -> bool:
        return self.status == CollectionStatusEnum.completed

    @classmethod
    def failed_for(cls, collection_date: date, error: Exception, execution_time_ms: int = 0) -> "CollectionResult":
        """Result for a date whose invocation failed as a whole."""
        return cls(
            collection_date=collection_date,
            status=CollectionStatusEnum.failed,
            execution_time_ms=execution_time_ms,
            error=str(error),
        )

    def __repr__(self):
        return (
            f"CollectionResult(date={self.collection_date.isoformat()}, status={self.status.value}, "
            f"collected={self.metrics_collected}, failed={self.metrics_failed})"
        )


# =============================================================================
# SERVICE
# =============================================================================

class CollectionService:
    """
    Collection Engine for daily metric snapshots.

    Parameters:
        db: Database session (source reads, snapshot upserts and run log)
        registry: Metric catalog; defaults to the built-in catalog
        source_reader: Object with measure(spec, target_date); defaults to
            SourceDataReader over the same session
        clock: Returns the current aware datetime; "today" is its UTC date
    """

    def __init__(
        self,
        db: Session,
        registry: Optional[MetricRegistry] = None,
        source_reader: Optional[Any] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.registry = registry or MetricRegistry.builtin()
        self.source_reader = source_reader or SourceDataReader(db)
        self.clock = clock

    def today(self) -> date:
        return self.clock().date()

    def collect(
        self,
        target_date: Union[str, date, None] = None,
        guard_days: Optional[int] = None,
    ) -> CollectionResult:
        """
        Collect all active metrics for one date.

        Parameters:
            target_date: "YYYY-MM-DD" or date; None means today
            guard_days: When set (> 0), refuse to overwrite a date older than
                this many days that already has snapshots. Routine triggers
                pass it; backfills and corrections don't.

        Returns:
            CollectionResult (status completed or failed)

        Raises:
            MetricsValidationError: invalid date (nothing written)
            RecollectionNotAllowedError: guarded re-collection (nothing written)
            SnapshotStorageError: a snapshot write failed; the run is
                finalized as failed and the partial result is attached as
                `exc.result`
        """
        today = self.today()
        target = parse_metric_date(target_date, field="target_date", default=today)
        self._check_recollection_guard(target, today, guard_days)

        start_time = time.perf_counter()
        run_id = collection_log.open_run(self.db, target, self.clock())

        logger.info(
            "[COLLECT] Starting collection: date=%s, run=%s, metrics=%d",
            target.isoformat(), run_id, len(self.registry.active()),
        )

        result = CollectionResult(
            collection_date=target,
            status=CollectionStatusEnum.running,
            run_id=run_id,
        )
        storage_error: Optional[SnapshotStorageError] = None

        for spec in self.registry.active():
            try:
                value = self._measure(spec, target)
            except Exception as e:
                # Clear a failed transaction so the remaining metrics can run
                self.db.rollback()
                self._record_failure(result, spec, e, run_id)
                continue

            try:
                snapshot_store.upsert_snapshot(
                    self.db,
                    metric_date=target,
                    metric_type=spec.metric_type,
                    metric_category=spec.metric_category,
                    value=value,
                    collected_at=self.clock(),
                    metadata={"source": spec.source.value, "shape": spec.shape.value},
                )
            except SnapshotStorageError as e:
                logger.error("[COLLECT] Snapshot store write failed, aborting run %s: %s", run_id, e.details)
                capture_exception(e, extra={
                    "operation": "upsert_snapshot",
                    "collection_date": target.isoformat(),
                    "metric_category": spec.metric_category,
                })
                result.errors.append(MetricFailure(
                    metric_type=spec.metric_type,
                    metric_category=spec.metric_category,
                    error_type=type(e).__name__,
                    message=e.details or e.message,
                ))
                result.error = e.message
                storage_error = e
                break

            result.values[spec.metric_category] = value
            result.metrics_collected += 1

        result.metrics_failed = len(result.errors)
        result.status = (
            CollectionStatusEnum.failed
            if result.errors or storage_error
            else CollectionStatusEnum.completed
        )
        result.execution_time_ms = int((time.perf_counter() - start_time) * 1000)

        collection_log.finalize_run(
            self.db,
            run_id,
            status=result.status,
            metrics_collected=result.metrics_collected,
            completed_at=self.clock(),
            error_message=self._summarize_errors(result),
            error_details=[f.to_dict() for f in result.errors] or None,
        )

        logger.info(
            "[COLLECT] Finished collection: date=%s, status=%s, collected=%d, failed=%d, time=%dms",
            target.isoformat(), result.status.value, result.metrics_collected,
            result.metrics_failed, result.execution_time_ms,
        )

        if storage_error is not None:
            storage_error.result = result
            raise storage_error
        return result

    # -------------------------------------------------------------------------
    # helpers
    # -------------------------------------------------------------------------

    def _check_recollection_guard(self, target: date, today: date, guard_days: Optional[int]) -> None:
        if not guard_days or guard_days <= 0:
            return
        if target >= today - timedelta(days=guard_days):
            return
        existing = snapshot_store.count_snapshots_for_date(self.db, target)
        if existing:
            raise RecollectionNotAllowedError(
                f"Metrics for {target.isoformat()} were already collected",
                f"{existing} snapshots exist and the date is older than {guard_days} days; "
                "use a backfill or force=true to overwrite",
            )

    def _measure(self, spec: MetricSpec, target: date) -> Decimal:
        raw = self.source_reader.measure(spec, target)
        if isinstance(raw, bool) or not isinstance(raw, (int, float, Decimal)):
            raise MetricComputationError(
                spec.metric_category,
                f"Unexpected value for {spec.metric_category}",
                f"Expected a number, got {type(raw).__name__}: {raw!r}",
            )
        if raw < 0:
            raise MetricComputationError(
                spec.metric_category,
                f"Negative count for {spec.metric_category}",
                f"Got {raw!r}",
            )
        return Decimal(raw)

    def _record_failure(
        self,
        result: CollectionResult,
        spec: MetricSpec,
        error: Exception,
        run_id: Optional[UUID],
    ) -> None:
        message = error.details if isinstance(error, MetricComputationError) and error.details else str(error)
        logger.warning(
            "[COLLECT] Metric %s failed for %s, continuing: %s: %s",
            spec.metric_category, result.collection_date.isoformat(), type(error).__name__, message,
        )
        capture_exception(error, extra={
            "operation": "measure_metric",
            "collection_date": result.collection_date.isoformat(),
            "metric_category": spec.metric_category,
            "run_id": str(run_id) if run_id else None,
        })
        result.errors.append(MetricFailure(
            metric_type=spec.metric_type,
            metric_category=spec.metric_category,
            error_type=type(error).__name__,
            message=message,
        ))

    @staticmethod
    def _summarize_errors(result: CollectionResult) -> Optional[str]:
        if not result.errors:
            return None
        first = result.errors[0]
        return (
            f"{len(result.errors)} metric(s) failed; first: "
            f"{first.metric_category}: {first.error_type}: {first.message}"
        )


def collect_daily_metrics(
    db: Session,
    target_date: Union[str, date, None] = None,
    registry: Optional[MetricRegistry] = None,
    guard_days: Optional[int] = None,
) -> CollectionResult:
    """Collect metrics for one date (convenience wrapper for scripts)."""
    return CollectionService(db, registry=registry).collect(target_date, guard_days=guard_days)
