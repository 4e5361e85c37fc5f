"""SQLAlchemy ORM models and enums.

This module defines the three tables owned by the metrics engine
(`metric_definitions`, `daily_metrics`, `metric_collection_log`) and read-only
mappings of the platform tables the engine counts (`profiles`, `tracks`,
`comments`). The source tables are owned by the application; the engine only
issues COUNT queries against them.
"""

import uuid
from datetime import datetime, timezone
import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base


# Single Base used by the entire application
Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Enums ---------------------------------------------------------

class CollectionStatusEnum(str, enum.Enum):
    running = "running"
    completed = "completed"
    failed = "failed"


class MetricTypeEnum(str, enum.Enum):
    """Value kind of a metric. Only counts are collected today."""
    count = "count"
    average = "average"
    percentage = "percentage"
    aggregate = "aggregate"


# Engine-owned tables -------------------------------------------

class MetricDefinition(Base):
    """Catalog row describing one recognized metric.

    Seeded from dailymetrics.metrics.registry.BUILTIN_METRICS at deploy time.
    Rows are deactivated (is_active = false), never deleted while snapshots
    reference them.
    """
    __tablename__ = "metric_definitions"
    __table_args__ = (
        UniqueConstraint("metric_type", "metric_category", name="unique_metric_definition"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    metric_type = Column(String(32), nullable=False)
    metric_category = Column(String(64), nullable=False)
    display_name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    unit = Column(String(32), nullable=True)  # 'users', 'posts', 'percentage', ...
    format_pattern = Column(String(32), nullable=True)  # e.g. '0,0' for thousands separator
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __str__(self):
        return f"{self.display_name} ({self.metric_type}/{self.metric_category})"


class DailyMetric(Base):
    """One measured value for one metric on one calendar date.

    The (metric_date, metric_type, metric_category) triple is unique; a second
    collection for the same date overwrites value and collection_timestamp.
    Nothing recomputes a row implicitly when source data changes later.
    """
    __tablename__ = "daily_metrics"
    __table_args__ = (
        UniqueConstraint("metric_date", "metric_type", "metric_category", name="unique_daily_metric"),
        Index("idx_daily_metrics_date_type", "metric_date", "metric_type", "metric_category"),
        Index("idx_daily_metrics_category", "metric_category", "metric_date"),
        Index("idx_daily_metrics_collection", "collection_timestamp"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    metric_date = Column(Date, nullable=False)  # the date measured, not when collected
    metric_type = Column(String(32), nullable=False)
    metric_category = Column(String(64), nullable=False)
    value = Column(Numeric(18, 4), nullable=False)
    # "metadata" is reserved on declarative classes
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    collection_timestamp = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __str__(self):
        return f"{self.metric_date.isoformat()} - {self.metric_category} = {self.value}"


class MetricCollectionLog(Base):
    """Append-only record of one collection invocation.

    Created with status=running, finalized exactly once as completed/failed.
    Re-running a date appends a new row.
    """
    __tablename__ = "metric_collection_log"
    __table_args__ = (
        CheckConstraint(
            "status IN ('running', 'completed', 'failed')",
            name="ck_metric_collection_log_status",
        ),
        Index("idx_collection_log_date", "collection_date"),
        Index("idx_collection_log_status", "status", "started_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    collection_date = Column(Date, nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), nullable=False, default=CollectionStatusEnum.running.value)
    metrics_collected = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    error_details = Column(JSON, nullable=True)  # [{metric_category, error_type, message}]
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __str__(self):
        return f"{self.collection_date.isoformat()} ({self.status})"


# Source tables (read-only for the engine) ----------------------

class Profile(Base):
    """Registered account."""
    __tablename__ = "profiles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)


class Track(Base):
    """Published content item (shown as "posts" on the dashboard)."""
    __tablename__ = "tracks"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=True)
    title = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)


class Comment(Base):
    """Interaction left on a track."""
    __tablename__ = "comments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=True)
    track_id = Column(UUID(as_uuid=True), nullable=True)
    content = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
