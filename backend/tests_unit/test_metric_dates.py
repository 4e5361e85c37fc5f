"""
Date Parsing Tests (Unit)
=========================

WHAT: Unit tests for metric date parsing and range helpers.
WHY: Every collection/backfill entry point validates dates before writing anything.

NOTE:
These tests live outside `backend/dailymetrics/tests/` to avoid loading the
integration-test `conftest.py`, which configures a database not required here.

REFERENCES:
- backend/dailymetrics/utils/dates.py
"""

from datetime import date, datetime, timezone

import pytest

from dailymetrics.errors import MetricsValidationError
from dailymetrics.utils.dates import (
    as_utc,
    day_bounds_utc,
    iter_dates,
    parse_metric_date,
    validate_date_range,
)


def test_parse_metric_date_accepts_iso_dates() -> None:
    assert parse_metric_date("2025-01-10") == date(2025, 1, 10)
    assert parse_metric_date(date(2025, 1, 10)) == date(2025, 1, 10)


def test_parse_metric_date_default_when_missing() -> None:
    assert parse_metric_date(None, default=date(2025, 1, 1)) == date(2025, 1, 1)
    assert parse_metric_date("", default=date(2025, 1, 1)) == date(2025, 1, 1)

    with pytest.raises(MetricsValidationError) as exc_info:
        parse_metric_date(None, field="start_date")
    assert exc_info.value.message == "start_date is required"


@pytest.mark.parametrize("value", ["2025-02-29", "2025/01/10", "20250110", "2025-01-10T00:00:00", 20250110])
def test_parse_metric_date_rejects_invalid(value) -> None:
    with pytest.raises(MetricsValidationError):
        parse_metric_date(value)


def test_parse_metric_date_rejects_datetime() -> None:
    with pytest.raises(MetricsValidationError):
        parse_metric_date(datetime(2025, 1, 10, 8, 30))


def test_validate_date_range() -> None:
    assert validate_date_range(date(2025, 1, 1), date(2025, 1, 1)) == 1
    assert validate_date_range(date(2025, 1, 1), date(2025, 1, 31)) == 31

    with pytest.raises(MetricsValidationError):
        validate_date_range(date(2025, 1, 2), date(2025, 1, 1))
    with pytest.raises(MetricsValidationError):
        validate_date_range(date(2025, 1, 1), date(2025, 1, 31), max_days=30)


def test_iter_dates_crosses_month_and_leap_day() -> None:
    dates = list(iter_dates(date(2024, 2, 28), date(2024, 3, 1)))

    assert dates == [date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1)]


def test_day_bounds_are_half_open_utc() -> None:
    start, end = day_bounds_utc(date(2025, 1, 10))

    assert start == datetime(2025, 1, 10, tzinfo=timezone.utc)
    assert end == datetime(2025, 1, 11, tzinfo=timezone.utc)


def test_as_utc_attaches_utc_to_naive() -> None:
    naive = datetime(2025, 1, 10, 12, 0)

    assert as_utc(naive).tzinfo is timezone.utc
    assert as_utc(None) is None
