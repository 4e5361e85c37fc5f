"""
Metrics router
--------------
Purpose:
- Trigger collection for one date (scheduler or manual) and backfills over a range.
- Serve dashboard reads (range, current totals, activity, run status) from snapshots.
Design choices:
- Collection and backfill run synchronously inside the request; the caller
  (scheduler / HTTP client) owns the timeout.
- Every failure is a MetricsError rendered by the handler in main.py as
  {"success": false, "error", "details"}.
- Routine collection is guarded against overwriting old dates; backfill and
  force=true are the explicit correction paths.
- Reads go through the TTL cache (deps.get_metrics_reader).
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from dailymetrics import state
from dailymetrics.database import get_db
from dailymetrics.deps import Settings, get_metrics_reader, get_settings
from dailymetrics.schemas import (
    ActivityPoint,
    BackfillRequest,
    BackfillResponse,
    BackfillSummaryOut,
    CollectionResultOut,
    CollectionStatusOut,
    CollectRequest,
    CollectResponse,
    CurrentMetricsView,
    DailyMetricOut,
    DataResponse,
    ErrorResponse,
    MetricDefinitionOut,
)
from dailymetrics.services.backfill_service import BackfillService
from dailymetrics.services.collection_service import CollectionService
from dailymetrics.services.metrics_reader import DEFAULT_ACTIVITY_DAYS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/metrics", tags=["metrics"])

_ERRORS = {
    400: {"model": ErrorResponse, "description": "Invalid input; nothing was written"},
    409: {"model": ErrorResponse, "description": "Re-collection of an old date refused"},
    503: {"model": ErrorResponse, "description": "Snapshot store unavailable"},
}


def _split(value: Optional[str]) -> Optional[List[str]]:
    """Parse a comma-separated filter; blank means no filter."""
    if not value:
        return None
    items = [item.strip() for item in value.split(",") if item.strip()]
    return items or None


@router.post("/collect", response_model=CollectResponse, responses=_ERRORS)
def collect_metrics(
    req: Optional[CollectRequest] = None,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    POST /metrics/collect

    Collect every active metric for one date (default: today).

    INPUT (optional):
        {"target_date": "2025-01-10", "force": false}

    OUTPUT:
        {"success": true, "data": {"metrics_collected": 6, "execution_time_ms": 42,
         "status": "completed", ...}, "message": "..."}

    A run with failed metrics still returns success=true with status "failed"
    and the partial count; only validation, guard and storage errors are non-2xx.

    Re-collecting a date older than RECOLLECTION_GUARD_DAYS (default 7) that
    already has snapshots returns 409 unless "force": true is sent; use
    POST /metrics/backfill to correct historical dates.
    """
    req = req or CollectRequest()
    guard_days = None if req.force else settings.RECOLLECTION_GUARD_DAYS

    service = CollectionService(db, registry=state.get_registry(db))
    result = service.collect(req.target_date, guard_days=guard_days)

    logger.info("[METRICS_API] collect %s -> %s", result.collection_date.isoformat(), result.status.value)
    return CollectResponse(
        data=CollectionResultOut.from_result(result),
        message=(
            f"Collected {result.metrics_collected} metrics for {result.collection_date.isoformat()}"
            + (f" ({result.metrics_failed} failed)" if result.metrics_failed else "")
        ),
    )


@router.post("/backfill", response_model=BackfillResponse, responses=_ERRORS)
def backfill_metrics(
    req: BackfillRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    POST /metrics/backfill

    Collect every date in [start_date, end_date] in ascending order.
    A failing date is reported in its entry and does not stop the rest.

    INPUT:
        {"start_date": "2025-01-01", "end_date": "2025-01-31"}

    OUTPUT:
        {"success": true, "data": [<per-date result>, ...], "summary": {...}, "message": "..."}
    """
    collector = CollectionService(db, registry=state.get_registry(db))
    backfill = BackfillService(collector, max_days=settings.BACKFILL_MAX_DAYS)
    outcome = backfill.backfill(req.start_date, req.end_date)

    summary = outcome.summary
    return BackfillResponse(
        data=[CollectionResultOut.from_result(r) for r in outcome.results],
        summary=BackfillSummaryOut(**summary.to_dict()),
        message=(
            f"Backfilled {summary.dates_processed} dates "
            f"({summary.dates_failed} failed, {summary.total_metrics} metrics)"
        ),
    )


@router.get("", response_model=DataResponse[List[DailyMetricOut]], responses=_ERRORS)
def get_metrics(
    start_date: str = Query(..., description="First date (YYYY-MM-DD)"),
    end_date: str = Query(..., description="Last date (YYYY-MM-DD)"),
    categories: Optional[str] = Query(None, description="Comma-separated metric categories"),
    types: Optional[str] = Query(None, description="Comma-separated metric types"),
    reader=Depends(get_metrics_reader),
):
    """Snapshots in the inclusive range, ascending by date. Empty list when nothing matches."""
    data = reader.fetch_metrics(start_date, end_date, categories=_split(categories), types=_split(types))
    return DataResponse[List[DailyMetricOut]](data=data)


@router.get("/current", response_model=DataResponse[CurrentMetricsView])
def get_current_metrics(reader=Depends(get_metrics_reader)):
    """Latest value per category (0 for categories never collected)."""
    return DataResponse[CurrentMetricsView](data=reader.fetch_current_metrics())


@router.get("/activity", response_model=DataResponse[List[ActivityPoint]], responses=_ERRORS)
def get_activity(
    days: int = Query(DEFAULT_ACTIVITY_DAYS, description="Trailing days, today included"),
    reader=Depends(get_metrics_reader),
):
    """One zero-filled point per date for the trailing `days` dates."""
    return DataResponse[List[ActivityPoint]](data=reader.fetch_activity_data(days))


@router.get("/collection-status", response_model=DataResponse[Optional[CollectionStatusOut]])
def get_collection_status(reader=Depends(get_metrics_reader)):
    """Most recent run, or null when nothing has run yet."""
    return DataResponse[Optional[CollectionStatusOut]](data=reader.get_collection_status())


@router.get("/collection-runs", response_model=DataResponse[List[CollectionStatusOut]], responses=_ERRORS)
def get_collection_runs(
    limit: int = Query(10, description="Number of runs (1-100)"),
    reader=Depends(get_metrics_reader),
):
    """Recent runs, newest first."""
    return DataResponse[List[CollectionStatusOut]](data=reader.recent_runs(limit))


@router.get("/definitions", response_model=DataResponse[List[MetricDefinitionOut]])
def get_definitions(reader=Depends(get_metrics_reader)):
    """The loaded metric catalog."""
    return DataResponse[List[MetricDefinitionOut]](data=reader.list_definitions())
