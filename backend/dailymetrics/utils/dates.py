from __future__ import annotations
from typing import Iterator, Optional, Tuple, Union
from datetime import date, datetime, time, timedelta, timezone
import re

from dailymetrics.errors import MetricsValidationError

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_metric_date(
    value: Union[str, date, None],
    field: str = "target_date",
    default: Optional[date] = None,
) -> date:
    """
    Parse a calendar date given as "YYYY-MM-DD".

    None (or an empty string) resolves to `default` when one is given.
    datetimes are rejected: metric dates carry no time component.

    Raises:
        MetricsValidationError: value is missing or not a valid calendar date
    """
    if value is None or value == "":
        if default is not None:
            return default
        raise MetricsValidationError(f"{field} is required", f"Expected {field} as YYYY-MM-DD")

    if isinstance(value, datetime):
        raise MetricsValidationError(
            f"Invalid {field}",
            f"Expected a calendar date, got a datetime: {value.isoformat()}",
        )
    if isinstance(value, date):
        return value

    if not isinstance(value, str) or not _ISO_DATE.match(value.strip()):
        raise MetricsValidationError(f"Invalid {field}", f"Expected YYYY-MM-DD, got {value!r}")

    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise MetricsValidationError(f"Invalid {field}", str(exc)) from exc


def validate_date_range(start: date, end: date, max_days: Optional[int] = None) -> int:
    """Check start <= end (and the optional size limit). Returns the day count."""
    if start > end:
        raise MetricsValidationError(
            "Invalid date range",
            f"start_date ({start.isoformat()}) cannot be after end_date ({end.isoformat()})",
        )
    days = (end - start).days + 1
    if max_days is not None and days > max_days:
        raise MetricsValidationError(
            "Date range too large",
            f"{days} days requested, the limit is {max_days}",
        )
    return days


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Every calendar date from start to end inclusive, ascending."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def day_bounds_utc(day: date) -> Tuple[datetime, datetime]:
    """[start, end) of a calendar day in UTC."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive timestamps (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
