"""
Telemetry Module
================

Error tracking for the metrics engine (Sentry). Logging itself is plain
stdlib `logging`, configured in dailymetrics/main.py and the scripts.

Usage:
    from dailymetrics.telemetry import init_sentry, capture_exception
"""

from dailymetrics.telemetry.sentry import capture_exception, init_sentry

__all__ = [
    "init_sentry",
    "capture_exception",
]
