"""
Metrics Engine Exceptions
=========================

Custom exception types for collection, backfill and the read API.

WHY THIS FILE EXISTS
--------------------
Callers must be able to tell "nothing ran" apart from "ran with partial
success":

    1. Validation errors (MetricsValidationError)
       - Unparseable dates, start after end, ranges over the limit
       - Raised before any row is written

    2. Per-metric computation errors (MetricComputationError)
       - One source query failed or returned an unexpected shape
       - Caught inside the run, never raised past it

    3. Storage errors (SnapshotStorageError)
       - The snapshot store rejected a write
       - Fatal for the current invocation; a backfill records it on that date

    4. Configuration errors
       - Missing DATABASE_URL etc.; RuntimeError at import (see database.py)

RELATED FILES
-------------
- dailymetrics/services/collection_service.py: Raises these exceptions
- dailymetrics/main.py: Maps MetricsError to the JSON failure response
"""

from typing import Optional


class MetricsError(Exception):
    """
    Base exception for all metrics engine errors.

    WHAT:
        Parent class carrying a human-readable message plus details.

    WHY:
        One exception handler renders every subclass as
        {"success": false, "error": ..., "details": ...}.
    """

    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details or ""


class MetricsValidationError(MetricsError):
    """Malformed or out-of-order input. Nothing was written."""

    status_code = 400


class RecollectionNotAllowedError(MetricsValidationError):
    """
    Routine collection refused to overwrite an old, already collected date.

    WHAT:
        Raised when the target date is older than the guard window and
        snapshots already exist for it.

    WHY:
        Historical snapshots only change through a deliberate correction
        (a backfill, or a collect request with force=true).
    """

    status_code = 409


class MetricComputationError(MetricsError):
    """One metric could not be computed. Isolated within its run."""

    def __init__(self, metric_category: str, message: str, details: Optional[str] = None):
        super().__init__(message, details)
        self.metric_category = metric_category


class SnapshotStorageError(MetricsError):
    """The snapshot store rejected a write. Fatal for the invocation."""

    status_code = 503
