"""Shared test helpers (clock, timestamps, fake source readers)."""

from datetime import date, datetime, time, timedelta, timezone


class FixedClock:
    """Callable clock pinned to one instant; advance() moves it forward."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def at(day: date, hour: int = 12) -> datetime:
    """A UTC timestamp on `day`."""
    return datetime.combine(day, time(hour=hour), tzinfo=timezone.utc)


class FailingReader:
    """Wraps a real reader and raises for selected categories or dates."""

    def __init__(self, inner, categories=(), dates=(), error=None, value=None):
        self.inner = inner
        self.categories = set(categories)
        self.dates = set(dates)
        self.error = error or RuntimeError("source query failed")
        self.value = value

    def measure(self, spec, target_date):
        hit_category = not self.categories or spec.metric_category in self.categories
        hit_date = not self.dates or target_date in self.dates
        if hit_category and hit_date:
            if self.value is not None:
                return self.value
            raise self.error
        return self.inner.measure(spec, target_date)
