"""Collection Run Log - lifecycle records for collection invocations.

WHAT:
    open_run() appends a `running` row, finalize_run() closes it exactly once
    as `completed` or `failed`. Read helpers return the latest/recent runs.

WHY:
    The log is independent of the snapshot store: a failed log write is
    logged and reported to Sentry but never blocks snapshot writes, and a
    failed snapshot write still gets its run finalized.

REFERENCES:
    - dailymetrics/models.py:MetricCollectionLog
    - dailymetrics/services/collection_service.py
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dailymetrics.models import CollectionStatusEnum, MetricCollectionLog
from dailymetrics.telemetry import capture_exception

logger = logging.getLogger(__name__)


def open_run(db: Session, collection_date: date, started_at: datetime) -> Optional[UUID]:
    """Append a running log row and commit it.

    Returns:
        The run id, or None when the log could not be written
    """
    run = MetricCollectionLog(
        collection_date=collection_date,
        started_at=started_at,
        status=CollectionStatusEnum.running.value,
        metrics_collected=0,
    )
    try:
        db.add(run)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(
            "[RUN_LOG] Failed to open run for %s, continuing without a log row: %s",
            collection_date.isoformat(), e,
        )
        capture_exception(e, extra={
            "operation": "open_run",
            "collection_date": collection_date.isoformat(),
        })
        return None

    logger.info("[RUN_LOG] Opened run %s for %s", run.id, collection_date.isoformat())
    return run.id


def finalize_run(
    db: Session,
    run_id: Optional[UUID],
    status: CollectionStatusEnum,
    metrics_collected: int,
    completed_at: datetime,
    error_message: Optional[str] = None,
    error_details: Optional[List[Dict[str, Any]]] = None,
) -> bool:
    """Close a running log row.

    Only rows still `running` are updated, so a run is finalized once.

    Returns:
        True if the row was finalized
    """
    if run_id is None:
        return False

    try:
        updated = (
            db.query(MetricCollectionLog)
            .filter(
                MetricCollectionLog.id == run_id,
                MetricCollectionLog.status == CollectionStatusEnum.running.value,
            )
            .update(
                {
                    MetricCollectionLog.status: status.value,
                    MetricCollectionLog.metrics_collected: metrics_collected,
                    MetricCollectionLog.completed_at: completed_at,
                    MetricCollectionLog.error_message: error_message,
                    MetricCollectionLog.error_details: error_details,
                },
                synchronize_session=False,
            )
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[RUN_LOG] Failed to finalize run %s: %s", run_id, e)
        capture_exception(e, extra={"operation": "finalize_run", "run_id": str(run_id)})
        return False

    if not updated:
        logger.warning("[RUN_LOG] Run %s was already finalized or is missing", run_id)
        return False

    logger.info(
        "[RUN_LOG] Finalized run %s: status=%s, metrics_collected=%d",
        run_id, status.value, metrics_collected,
    )
    return True


def latest_run(db: Session) -> Optional[MetricCollectionLog]:
    """Most recent run by started_at, or None if none exists."""
    return (
        db.query(MetricCollectionLog)
        .order_by(MetricCollectionLog.started_at.desc(), MetricCollectionLog.created_at.desc())
        .first()
    )


def recent_runs(db: Session, limit: int = 10) -> List[MetricCollectionLog]:
    return (
        db.query(MetricCollectionLog)
        .order_by(MetricCollectionLog.started_at.desc(), MetricCollectionLog.created_at.desc())
        .limit(limit)
        .all()
    )
