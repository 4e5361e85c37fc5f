#!/usr/bin/env python3
"""
Daily Metrics Backfill Script.

WHAT:
    Collects snapshots for every date in a range, oldest first. A failing
    date is reported and skipped; re-run with the same range (or just the
    failed dates) to retry, since collection is idempotent per date.

USAGE:
    # From the first user/post/comment until today (30 days if there is no data)
    python scripts/backfill_metrics.py

    # Explicit range
    python scripts/backfill_metrics.py --start 2025-01-01 --end 2025-01-31

    Ctrl+C stops after the date currently being collected.

REFERENCES:
    - backend/dailymetrics/services/backfill_service.py
"""

import argparse
import logging
import os
import signal
import sys
import threading

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Backfill daily metric snapshots for a date range")
    parser.add_argument("--start", dest="start_date", default=None, help="First date (YYYY-MM-DD), default earliest source date")
    parser.add_argument("--end", dest="end_date", default=None, help="Last date (YYYY-MM-DD), default today")
    parser.add_argument("--max-days", type=int, default=None, help="Refuse ranges longer than this")
    args = parser.parse_args(argv)

    from dailymetrics.database import get_sync_session
    from dailymetrics.errors import MetricsValidationError
    from dailymetrics.metrics.registry import load_registry
    from dailymetrics.services.backfill_service import BackfillService
    from dailymetrics.services.collection_service import CollectionService
    from dailymetrics.services.source_reader import default_backfill_start
    from dailymetrics.telemetry import init_sentry

    init_sentry()

    cancel_event = threading.Event()

    def _request_stop(signum, frame):
        logger.warning("Stop requested, finishing the current date")
        cancel_event.set()

    signal.signal(signal.SIGINT, _request_stop)

    with get_sync_session() as db:
        collector = CollectionService(db, registry=load_registry(db))
        start_date = args.start_date or default_backfill_start(db, collector.today())

        try:
            outcome = BackfillService(collector, max_days=args.max_days).backfill(
                start_date, args.end_date, cancel_event=cancel_event,
            )
        except MetricsValidationError as e:
            logger.error("%s: %s", e.message, e.details)
            return 2

    summary = outcome.summary
    logger.info("=" * 60)
    logger.info("Backfill %s to %s: %s", summary.start_date, summary.end_date, summary.status)
    logger.info("  Dates processed: %d/%d", summary.dates_processed, summary.total_dates)
    logger.info("  Metrics written: %d", summary.total_metrics)
    logger.info("  Execution time:  %dms", summary.execution_time_ms)
    if summary.failed_dates:
        logger.warning("  Failed dates: %s", ", ".join(d.isoformat() for d in summary.failed_dates))

    return 0 if summary.status == "completed" else 1


if __name__ == "__main__":
    sys.exit(main())
