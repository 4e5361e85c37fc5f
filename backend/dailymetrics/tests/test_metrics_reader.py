"""Read API tests

WHAT: Range reads, current totals, zero-filled activity, run status, caching
REFERENCES:
    - dailymetrics/services/metrics_reader.py
    - dailymetrics/services/metrics_cache.py
"""

from datetime import date, timedelta

import pytest

from dailymetrics.errors import MetricsValidationError
from dailymetrics.metrics.registry import BUILTIN_METRICS
from dailymetrics.models import CollectionStatusEnum
from dailymetrics.services.collection_service import CollectionService
from dailymetrics.services.metrics_cache import CachedMetricsReader, MemoryCacheBackend
from dailymetrics.services.metrics_reader import MetricsReader
from dailymetrics.tests.helpers import at

CATEGORIES = [spec.metric_category for spec in BUILTIN_METRICS]


@pytest.fixture
def reader(test_db_session, clock):
    return MetricsReader(test_db_session, clock=clock)


@pytest.fixture
def collector(test_db_session, clock):
    return CollectionService(test_db_session, clock=clock)


def test_fetch_metrics_is_ordered_and_filtered(reader, collector, make_source):
    make_source("posts", at(date(2025, 1, 11)), count=2)
    collector.collect("2025-01-12")
    collector.collect("2025-01-11")
    collector.collect("2025-01-10")

    rows = reader.fetch_metrics("2025-01-10", "2025-01-12", categories=["posts_created"])

    assert [r.metric_date for r in rows] == [date(2025, 1, 10), date(2025, 1, 11), date(2025, 1, 12)]
    assert [r.value for r in rows] == [0, 2, 0]
    assert all(r.metric_type == "count" for r in rows)

    everything = reader.fetch_metrics("2025-01-10", "2025-01-12")
    assert len(everything) == 3 * len(BUILTIN_METRICS)


def test_fetch_metrics_empty_is_not_an_error(reader):
    assert reader.fetch_metrics("2025-01-01", "2025-01-31") == []
    assert reader.fetch_metrics("2025-01-01", "2025-01-31", categories=["no_such_metric"]) == []


def test_fetch_metrics_validates_range(reader):
    with pytest.raises(MetricsValidationError):
        reader.fetch_metrics("2025-01-31", "2025-01-01")
    with pytest.raises(MetricsValidationError):
        reader.fetch_metrics("2025-01-01", None)


def test_current_metrics_on_empty_store_defaults_to_zero(reader):
    view = reader.fetch_current_metrics()

    assert set(view.values) == set(CATEGORIES)
    assert all(v == 0 for v in view.values.values())
    assert all(d is None for d in view.as_of.values())


def test_current_metrics_use_latest_date(reader, collector, make_source):
    make_source("users", at(date(2025, 1, 5)), count=2)
    collector.collect("2025-01-06")
    make_source("users", at(date(2025, 1, 7)), count=1)
    collector.collect("2025-01-08")

    view = reader.fetch_current_metrics()

    assert view.values["users_total"] == 3
    assert view.as_of["users_total"] == date(2025, 1, 8)


def test_activity_is_zero_filled(reader, collector, make_source):
    make_source("comments", at(date(2025, 1, 14)), count=5)
    collector.collect("2025-01-14")

    points = reader.fetch_activity_data(30)

    assert len(points) == 30
    assert points[-1].date == date(2025, 1, 15)
    assert points[0].date == date(2025, 1, 15) - timedelta(days=29)
    assert all(b.date - a.date == timedelta(days=1) for a, b in zip(points, points[1:]))
    assert set(points[0].values) == {"users_created", "posts_created", "comments_created"}

    by_date = {p.date: p.values for p in points}
    assert by_date[date(2025, 1, 14)]["comments_created"] == 5
    assert by_date[date(2025, 1, 13)]["comments_created"] == 0


@pytest.mark.parametrize("days", [0, -3, 366])
def test_activity_days_bounds(reader, days):
    with pytest.raises(MetricsValidationError):
        reader.fetch_activity_data(days)


def test_collection_status(reader, collector, clock):
    assert reader.get_collection_status() is None

    collector.collect("2025-01-10")
    clock.advance(hours=1)
    collector.collect("2025-01-11")

    status = reader.get_collection_status()
    assert status.collection_date == date(2025, 1, 11)
    assert status.status == CollectionStatusEnum.completed
    assert status.metrics_collected == len(BUILTIN_METRICS)
    assert status.duration_ms == 0  # fixed clock

    runs = reader.recent_runs(limit=5)
    assert [r.collection_date for r in runs] == [date(2025, 1, 11), date(2025, 1, 10)]


def test_list_definitions(reader):
    definitions = reader.list_definitions()

    assert [d.metric_category for d in definitions] == CATEGORIES
    assert {d.shape for d in definitions} == {"cumulative", "incremental"}


def test_cached_reader_serves_stale_until_expiry(reader, collector):
    now = [0.0]
    cached = CachedMetricsReader(reader, MemoryCacheBackend(clock=lambda: now[0]), ttl_seconds=300)

    before = cached.fetch_current_metrics()
    collector.collect("2025-01-10")

    # No invalidation from collection: still the cached view
    assert cached.fetch_current_metrics() == before
    assert cached.get_collection_status() is not None

    now[0] = 301.0
    after = cached.fetch_current_metrics()
    assert after.as_of["users_total"] == date(2025, 1, 10)


def test_cached_reader_round_trips_results(reader, collector):
    collector.collect("2025-01-10")
    cached = CachedMetricsReader(reader, MemoryCacheBackend())

    first = cached.fetch_metrics("2025-01-10", "2025-01-10", categories=["users_total"])
    second = cached.fetch_metrics("2025-01-10", "2025-01-10", categories=["users_total"])

    assert first == second
    assert second[0].metric_category == "users_total"
    assert len(cached.fetch_activity_data(7)) == 7
