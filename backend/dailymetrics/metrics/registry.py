"""
Metric Definition Registry
==========================

Closed, versioned catalog of the metrics the engine knows how to collect.

WHAT:
    Each MetricSpec pairs the catalog identity (metric_type, metric_category)
    and its display metadata with the collection logic: which source table is
    counted and whether the count is cumulative or incremental.

WHY:
    New metrics need new collection logic anyway, so the catalog is a table of
    tagged variants rather than a plugin mechanism. The metric_definitions
    table mirrors this catalog so dashboards can read display metadata and
    operators can deactivate a metric without a deploy.

SHAPES:
    cumulative   count of source rows created on or before the target date
    incremental  count of source rows created on the target date

REFERENCES:
    - dailymetrics/services/collection_service.py (consumer)
    - alembic/versions/20250113_000001_create_daily_metrics_tables.py (seed)
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from dailymetrics.models import MetricDefinition, MetricTypeEnum

logger = logging.getLogger(__name__)


class MetricShape(str, enum.Enum):
    cumulative = "cumulative"
    incremental = "incremental"


class MetricSource(str, enum.Enum):
    """Source tables the engine counts (value is the table name)."""
    users = "profiles"
    posts = "tracks"
    comments = "comments"


@dataclass(frozen=True)
class MetricSpec:
    metric_type: str
    metric_category: str
    display_name: str
    description: str
    unit: str
    format_pattern: str
    source: MetricSource
    shape: MetricShape
    is_active: bool = True

    @property
    def key(self) -> Tuple[str, str]:
        return (self.metric_type, self.metric_category)


_COUNT = MetricTypeEnum.count.value

BUILTIN_METRICS: Tuple[MetricSpec, ...] = (
    MetricSpec(
        metric_type=_COUNT,
        metric_category="users_total",
        display_name="Total Users",
        description="Total number of registered users on the platform as of this date",
        unit="users",
        format_pattern="0,0",
        source=MetricSource.users,
        shape=MetricShape.cumulative,
    ),
    MetricSpec(
        metric_type=_COUNT,
        metric_category="posts_total",
        display_name="Total Posts",
        description="Total number of posts/tracks created on the platform as of this date",
        unit="posts",
        format_pattern="0,0",
        source=MetricSource.posts,
        shape=MetricShape.cumulative,
    ),
    MetricSpec(
        metric_type=_COUNT,
        metric_category="comments_total",
        display_name="Total Comments",
        description="Total number of comments created on the platform as of this date",
        unit="comments",
        format_pattern="0,0",
        source=MetricSource.comments,
        shape=MetricShape.cumulative,
    ),
    MetricSpec(
        metric_type=_COUNT,
        metric_category="users_created",
        display_name="New Users",
        description="Number of accounts registered on this specific date",
        unit="users",
        format_pattern="0,0",
        source=MetricSource.users,
        shape=MetricShape.incremental,
    ),
    MetricSpec(
        metric_type=_COUNT,
        metric_category="posts_created",
        display_name="Posts Created",
        description="Number of new posts/tracks created on this specific date",
        unit="posts",
        format_pattern="0,0",
        source=MetricSource.posts,
        shape=MetricShape.incremental,
    ),
    MetricSpec(
        metric_type=_COUNT,
        metric_category="comments_created",
        display_name="Comments Created",
        description="Number of new comments created on this specific date",
        unit="comments",
        format_pattern="0,0",
        source=MetricSource.comments,
        shape=MetricShape.incremental,
    ),
)


class MetricRegistry:
    """Immutable view over a set of MetricSpecs.

    Loaded once per process (see dailymetrics.state.get_registry) and shared
    without locking.
    """

    def __init__(self, specs: Iterable[MetricSpec]):
        self._specs: Tuple[MetricSpec, ...] = tuple(specs)
        self._by_key: Dict[Tuple[str, str], MetricSpec] = {s.key: s for s in self._specs}
        if len(self._by_key) != len(self._specs):
            raise ValueError("Duplicate (metric_type, metric_category) in metric catalog")
        categories = [s.metric_category for s in self._specs]
        if len(set(categories)) != len(categories):
            raise ValueError("Each metric_category must belong to exactly one metric_type")

    @classmethod
    def builtin(cls) -> "MetricRegistry":
        return cls(BUILTIN_METRICS)

    def __iter__(self):
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def get(self, metric_type: str, metric_category: str) -> Optional[MetricSpec]:
        return self._by_key.get((metric_type, metric_category))

    def all(self) -> Tuple[MetricSpec, ...]:
        return self._specs

    def active(self) -> List[MetricSpec]:
        return [s for s in self._specs if s.is_active]

    def active_by_shape(self, shape: MetricShape) -> List[MetricSpec]:
        return [s for s in self.active() if s.shape == shape]

    def categories(self) -> List[str]:
        """Active categories in catalog order."""
        return [s.metric_category for s in self.active()]


def load_registry(db: Session) -> MetricRegistry:
    """Load the catalog, applying persisted display metadata and active flags.

    WHAT:
        Starts from BUILTIN_METRICS and overlays each matching
        metric_definitions row. Rows without collection logic are ignored.
        An empty table yields the built-in catalog unchanged.

    Args:
        db: Database session

    Returns:
        MetricRegistry
    """
    rows = db.query(MetricDefinition).all()
    if not rows:
        logger.info("[REGISTRY] metric_definitions is empty, using built-in catalog")
        return MetricRegistry.builtin()

    by_key = {(r.metric_type, r.metric_category): r for r in rows}
    specs = []
    for spec in BUILTIN_METRICS:
        row = by_key.pop(spec.key, None)
        if row is None:
            specs.append(spec)
            continue
        specs.append(replace(
            spec,
            display_name=row.display_name or spec.display_name,
            description=row.description or spec.description,
            unit=row.unit or spec.unit,
            format_pattern=row.format_pattern or spec.format_pattern,
            is_active=bool(row.is_active),
        ))

    for metric_type, metric_category in by_key:
        logger.warning(
            "[REGISTRY] Ignoring definition %s/%s: no collection logic for it",
            metric_type, metric_category,
        )

    registry = MetricRegistry(specs)
    logger.info(
        "[REGISTRY] Loaded %d metric definitions (%d active)",
        len(registry), len(registry.active()),
    )
    return registry


def seed_metric_definitions(db: Session) -> int:
    """Upsert BUILTIN_METRICS into metric_definitions.

    Existing rows get refreshed display metadata; is_active is left as the
    operator set it.

    Returns:
        Number of catalog rows written
    """
    from dailymetrics.utils.sql import dialect_insert

    for spec in BUILTIN_METRICS:
        stmt = dialect_insert(db, MetricDefinition).values(
            metric_type=spec.metric_type,
            metric_category=spec.metric_category,
            display_name=spec.display_name,
            description=spec.description,
            unit=spec.unit,
            format_pattern=spec.format_pattern,
            is_active=spec.is_active,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["metric_type", "metric_category"],
            set_={
                "display_name": stmt.excluded.display_name,
                "description": stmt.excluded.description,
                "unit": stmt.excluded.unit,
                "format_pattern": stmt.excluded.format_pattern,
            },
        )
        db.execute(stmt)
    db.commit()
    logger.info("[REGISTRY] Seeded %d metric definitions", len(BUILTIN_METRICS))
    return len(BUILTIN_METRICS)
