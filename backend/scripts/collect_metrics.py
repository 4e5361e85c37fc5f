#!/usr/bin/env python3
"""
Daily Metrics Collection Script.

WHAT:
    Collects every active metric for one date. Meant for the daily scheduler
    (cron / platform scheduler), which owns retries and timeouts.

USAGE:
    # Collect today
    python scripts/collect_metrics.py

    # Collect a specific date
    python scripts/collect_metrics.py --date 2025-01-10

    # Refresh metric_definitions from the built-in catalog first
    python scripts/collect_metrics.py --seed-definitions

EXIT CODES:
    0  run completed
    1  run finished with failed metrics, or the snapshot store failed
    2  invalid arguments

REFERENCES:
    - backend/dailymetrics/services/collection_service.py
"""

import argparse
import logging
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Collect daily metric snapshots for one date")
    parser.add_argument("--date", dest="target_date", default=None, help="Date to collect (YYYY-MM-DD), default today")
    parser.add_argument(
        "--seed-definitions",
        action="store_true",
        help="Upsert the built-in catalog into metric_definitions before collecting",
    )
    args = parser.parse_args(argv)

    from dailymetrics.database import get_sync_session
    from dailymetrics.errors import MetricsValidationError, SnapshotStorageError
    from dailymetrics.metrics.registry import load_registry, seed_metric_definitions
    from dailymetrics.services.collection_service import CollectionService
    from dailymetrics.telemetry import init_sentry

    init_sentry()

    with get_sync_session() as db:
        if args.seed_definitions:
            count = seed_metric_definitions(db)
            logger.info("Seeded %d metric definitions", count)

        service = CollectionService(db, registry=load_registry(db))
        try:
            result = service.collect(args.target_date)
        except MetricsValidationError as e:
            logger.error("%s: %s", e.message, e.details)
            return 2
        except SnapshotStorageError as e:
            logger.error("Collection aborted: %s (%s)", e.message, e.details)
            return 1

    logger.info(
        "Collected %d metrics for %s in %dms (status=%s)",
        result.metrics_collected, result.collection_date.isoformat(),
        result.execution_time_ms, result.status.value,
    )
    for failure in result.errors:
        logger.warning("  %s: %s: %s", failure.metric_category, failure.error_type, failure.message)

    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
