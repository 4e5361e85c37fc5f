"""Pydantic schemas for request/response payloads."""

from datetime import date, datetime
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar
from uuid import UUID

from pydantic import BaseModel, Field

from .models import CollectionStatusEnum

T = TypeVar("T")


# Requests

class CollectRequest(BaseModel):
    """Payload for POST /metrics/collect (body optional)."""

    target_date: Optional[str] = Field(
        default=None,
        description="Date to collect (YYYY-MM-DD); defaults to today",
    )
    force: bool = Field(
        default=False,
        description="Allow overwriting an already collected date older than the re-collection window",
    )

    model_config = {
        "json_schema_extra": {
            "example": {"target_date": "2025-01-10"}
        }
    }


class BackfillRequest(BaseModel):
    """Payload for POST /metrics/backfill."""

    start_date: Optional[str] = Field(default=None, description="First date (YYYY-MM-DD), required")
    end_date: Optional[str] = Field(default=None, description="Last date (YYYY-MM-DD); defaults to today")

    model_config = {
        "json_schema_extra": {
            "example": {"start_date": "2025-01-01", "end_date": "2025-01-31"}
        }
    }


# Collection results

class MetricFailureOut(BaseModel):
    metric_type: str
    metric_category: str
    error_type: str
    message: str


class CollectionResultOut(BaseModel):
    """One collection invocation (also one backfill date)."""

    collection_date: date
    run_id: Optional[UUID] = Field(default=None, description="Run log id; null if the log write failed")
    status: CollectionStatusEnum
    metrics_collected: int = Field(description="Snapshots written")
    metrics_failed: int = 0
    execution_time_ms: int
    errors: List[MetricFailureOut] = Field(default_factory=list)
    error: Optional[str] = Field(default=None, description="Invocation-level failure, if any")

    @classmethod
    def from_result(cls, result) -> "CollectionResultOut":
        return cls(
            collection_date=result.collection_date,
            run_id=result.run_id,
            status=result.status,
            metrics_collected=result.metrics_collected,
            metrics_failed=result.metrics_failed,
            execution_time_ms=result.execution_time_ms,
            errors=[MetricFailureOut(**f.to_dict()) for f in result.errors],
            error=result.error,
        )


class BackfillSummaryOut(BaseModel):
    start_date: date
    end_date: date
    total_dates: int
    dates_processed: int
    failed_dates: List[date] = Field(default_factory=list)
    total_metrics: int
    execution_time_ms: int
    cancelled: bool = False
    status: Literal["completed", "completed_with_errors", "failed", "cancelled"]


class CollectResponse(BaseModel):
    success: Literal[True] = True
    data: CollectionResultOut
    message: str

    model_config = {
        "json_schema_extra": {
            "example": {
                "success": True,
                "data": {
                    "collection_date": "2025-01-10",
                    "status": "completed",
                    "metrics_collected": 6,
                    "execution_time_ms": 42,
                },
                "message": "Collected 6 metrics for 2025-01-10",
            }
        }
    }


class BackfillResponse(BaseModel):
    success: Literal[True] = True
    data: List[CollectionResultOut]
    summary: BackfillSummaryOut
    message: str


class DataResponse(BaseModel, Generic[T]):
    """Success envelope for read endpoints."""

    success: Literal[True] = True
    data: T


class ErrorResponse(BaseModel):
    """Failure envelope for every metrics endpoint."""

    success: Literal[False] = False
    error: str = Field(description="Error message")
    details: str = Field(default="", description="Additional detail")

    model_config = {
        "json_schema_extra": {
            "example": {
                "success": False,
                "error": "Invalid date range",
                "details": "start_date (2025-01-31) cannot be after end_date (2025-01-01)",
            }
        }
    }


# Read API

class DailyMetricOut(BaseModel):
    """One stored snapshot."""

    metric_date: date
    metric_type: str
    metric_category: str
    value: float
    collection_timestamp: Optional[datetime] = None


class CurrentMetricsView(BaseModel):
    """Latest value per known category; categories never collected are 0."""

    values: Dict[str, float]
    as_of: Dict[str, Optional[date]] = Field(
        description="Snapshot date each value came from (null when defaulted to 0)"
    )


class ActivityPoint(BaseModel):
    """Incremental metrics for one date (zero-filled)."""

    date: date
    values: Dict[str, float]


class CollectionStatusOut(BaseModel):
    """Most recent collection run."""

    id: UUID
    collection_date: date
    status: CollectionStatusEnum
    metrics_collected: int
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = Field(
        default=None,
        description="completed_at - started_at, or time elapsed so far while running",
    )
    error_message: Optional[str] = None
    error_details: Optional[List[Dict[str, Any]]] = None


class MetricDefinitionOut(BaseModel):
    metric_type: str
    metric_category: str
    display_name: str
    description: Optional[str] = None
    unit: Optional[str] = None
    format_pattern: Optional[str] = None
    source: str
    shape: str
    is_active: bool


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service status", examples=["ok"])
