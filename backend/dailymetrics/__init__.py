"""Daily metrics collection and aggregation service."""

__version__ = "1.0.0"
