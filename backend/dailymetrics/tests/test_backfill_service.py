"""Backfill orchestrator tests

WHAT: Range validation, ordering, per-date failure handling, cancellation
REFERENCES:
    - dailymetrics/services/backfill_service.py
"""

import threading
from datetime import date

import pytest

from dailymetrics.errors import MetricsValidationError, SnapshotStorageError
from dailymetrics.metrics.registry import BUILTIN_METRICS
from dailymetrics.models import CollectionStatusEnum, DailyMetric, MetricCollectionLog
from dailymetrics.services import snapshot_store
from dailymetrics.services.backfill_service import BackfillService
from dailymetrics.services.collection_service import CollectionService
from dailymetrics.services.source_reader import SourceDataReader, default_backfill_start, earliest_source_date
from dailymetrics.tests.helpers import FailingReader, at

D1, D2, D3 = date(2025, 1, 1), date(2025, 1, 2), date(2025, 1, 3)


def _backfill_service(db, clock, reader=None, max_days=None):
    collector = CollectionService(db, source_reader=reader, clock=clock)
    return BackfillService(collector, max_days=max_days)


def _dates_with_snapshots(db):
    return {row[0] for row in db.query(DailyMetric.metric_date).distinct()}


def test_collects_every_date_in_order(test_db_session, clock, make_source):
    make_source("users", at(D1), count=1)
    make_source("users", at(D3), count=2)

    outcome = _backfill_service(test_db_session, clock).backfill("2025-01-01", "2025-01-03")

    assert [r.collection_date for r in outcome.results] == [D1, D2, D3]
    assert all(r.status == CollectionStatusEnum.completed for r in outcome.results)
    assert outcome.summary.status == "completed"
    assert outcome.summary.dates_processed == 3
    assert outcome.summary.total_metrics == 3 * len(BUILTIN_METRICS)

    totals = {
        row.metric_date: row.value
        for row in test_db_session.query(DailyMetric).filter(DailyMetric.metric_category == "users_total")
    }
    assert totals == {D1: 1, D2: 1, D3: 3}
    assert test_db_session.query(MetricCollectionLog).count() == 3


def test_failing_date_does_not_stop_the_rest(test_db_session, clock):
    reader = FailingReader(SourceDataReader(test_db_session), dates={D2})

    outcome = _backfill_service(test_db_session, clock, reader=reader).backfill(D1, D3)

    statuses = [r.status for r in outcome.results]
    assert statuses == [
        CollectionStatusEnum.completed,
        CollectionStatusEnum.failed,
        CollectionStatusEnum.completed,
    ]
    assert outcome.results[1].metrics_collected == 0
    assert outcome.summary.failed_dates == [D2]
    assert outcome.summary.status == "completed_with_errors"
    assert _dates_with_snapshots(test_db_session) == {D1, D3}


def test_storage_failure_on_one_date_is_recorded(test_db_session, clock, monkeypatch):
    real_upsert = snapshot_store.upsert_snapshot

    def flaky_upsert(db, metric_date, *args, **kwargs):
        if metric_date == D2:
            raise SnapshotStorageError("Failed to write snapshot", "disk full")
        return real_upsert(db, metric_date, *args, **kwargs)

    monkeypatch.setattr(snapshot_store, "upsert_snapshot", flaky_upsert)

    outcome = _backfill_service(test_db_session, clock).backfill(D1, D3)

    assert len(outcome.results) == 3
    assert outcome.results[1].status == CollectionStatusEnum.failed
    assert outcome.results[1].error == "Failed to write snapshot"
    assert _dates_with_snapshots(test_db_session) == {D1, D3}


def test_all_dates_failing_is_failed(test_db_session, clock):
    reader = FailingReader(SourceDataReader(test_db_session))

    outcome = _backfill_service(test_db_session, clock, reader=reader).backfill(D1, D2)

    assert outcome.summary.status == "failed"
    assert outcome.summary.failed_dates == [D1, D2]


def test_single_day_range(test_db_session, clock):
    outcome = _backfill_service(test_db_session, clock).backfill(D2, D2)

    assert [r.collection_date for r in outcome.results] == [D2]


def test_end_date_defaults_to_today(test_db_session, clock):
    outcome = _backfill_service(test_db_session, clock).backfill("2025-01-13")

    assert [r.collection_date for r in outcome.results] == [
        date(2025, 1, 13), date(2025, 1, 14), date(2025, 1, 15),
    ]


@pytest.mark.parametrize(
    "start, end",
    [
        ("2025-01-03", "2025-01-01"),  # start after end
        ("2025-02-30", "2025-03-01"),  # not a calendar date
        (None, "2025-01-01"),          # missing start
        ("2025-01-01", "01/03/2025"),  # wrong format
    ],
)
def test_invalid_range_does_no_work(test_db_session, clock, start, end):
    with pytest.raises(MetricsValidationError):
        _backfill_service(test_db_session, clock).backfill(start, end)

    assert test_db_session.query(DailyMetric).count() == 0
    assert test_db_session.query(MetricCollectionLog).count() == 0


def test_range_limit(test_db_session, clock):
    service = _backfill_service(test_db_session, clock, max_days=2)

    with pytest.raises(MetricsValidationError):
        service.backfill(D1, D3)


def test_cancel_stops_between_dates(test_db_session, clock):
    cancel = threading.Event()
    collector = CollectionService(test_db_session, clock=clock)
    original_collect = collector.collect

    def collect_then_cancel(target_date=None, guard_days=None):
        result = original_collect(target_date, guard_days=guard_days)
        cancel.set()
        return result

    collector.collect = collect_then_cancel

    outcome = BackfillService(collector).backfill(D1, D3, cancel_event=cancel)

    assert [r.collection_date for r in outcome.results] == [D1]
    assert outcome.summary.cancelled is True
    assert outcome.summary.status == "cancelled"
    assert _dates_with_snapshots(test_db_session) == {D1}


def test_backfill_overwrites_old_dates(test_db_session, clock, make_source):
    service = _backfill_service(test_db_session, clock)
    service.backfill(D1, D1)
    make_source("comments", at(D1), count=4)

    service.backfill(D1, D1)

    value = (
        test_db_session.query(DailyMetric.value)
        .filter(DailyMetric.metric_date == D1, DailyMetric.metric_category == "comments_created")
        .scalar()
    )
    assert value == 4


def test_default_start_uses_earliest_source_date(test_db_session, make_source):
    assert earliest_source_date(test_db_session) is None
    assert default_backfill_start(test_db_session, date(2025, 1, 31)) == date(2025, 1, 1)

    make_source("comments", at(date(2024, 11, 5)))
    make_source("users", at(date(2024, 10, 20), hour=3))

    assert earliest_source_date(test_db_session) == date(2024, 10, 20)
    assert default_backfill_start(test_db_session, date(2025, 1, 31)) == date(2024, 10, 20)


def test_backfill_daily_metrics_wrapper(test_db_session):
    from dailymetrics.services.backfill_service import backfill_daily_metrics

    outcome = backfill_daily_metrics(test_db_session, D1, D2)

    assert outcome.summary.status == "completed"
    assert _dates_with_snapshots(test_db_session) == {D1, D2}
