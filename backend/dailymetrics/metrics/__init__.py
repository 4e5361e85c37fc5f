"""Metric catalog."""

from dailymetrics.metrics.registry import (
    BUILTIN_METRICS,
    MetricRegistry,
    MetricShape,
    MetricSource,
    MetricSpec,
    load_registry,
    seed_metric_definitions,
)

__all__ = [
    "BUILTIN_METRICS",
    "MetricRegistry",
    "MetricShape",
    "MetricSource",
    "MetricSpec",
    "load_registry",
    "seed_metric_definitions",
]
