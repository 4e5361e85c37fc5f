"""
Metrics Cache
=============

Time-bounded memoization for the read API.

WHAT:
    CachedMetricsReader exposes the same operations as MetricsReader. Each
    call is keyed by (operation, serialized parameters); a hit returns the
    stored result without querying the database, a miss or expired entry
    calls through and stores the result for `ttl_seconds` (default 5 min).

WHY:
    Dashboards poll the same few queries. Snapshots are daily, so a few
    minutes of staleness is fine and the cache is never invalidated by
    collection runs.

BACKENDS:
    - MemoryCacheBackend: per-process dict, default
    - RedisCacheBackend: shared across workers (SETEX with JSON payloads)

    Backend errors never fail a request: reads fall through to the
    database and failed writes are only logged.

REFERENCES:
    - dailymetrics/services/metrics_reader.py (wrapped reader)
    - dailymetrics/state.py (process-wide backend)
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import TypeAdapter, ValidationError
from redis import Redis

from dailymetrics.schemas import (
    ActivityPoint,
    CollectionStatusOut,
    CurrentMetricsView,
    DailyMetricOut,
    MetricDefinitionOut,
)
from dailymetrics.services.metrics_reader import DEFAULT_ACTIVITY_DAYS, MetricsReader

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 300  # 5 minutes
KEY_PREFIX = "dailymetrics:cache"

_metrics_list = TypeAdapter(List[DailyMetricOut])
_current_view = TypeAdapter(CurrentMetricsView)
_activity_list = TypeAdapter(List[ActivityPoint])
_status = TypeAdapter(Optional[CollectionStatusOut])
_runs_list = TypeAdapter(List[CollectionStatusOut])
_definitions_list = TypeAdapter(List[MetricDefinitionOut])


class MemoryCacheBackend:
    """In-process TTL cache. Thread-safe; expired entries are dropped on read
    and purged on every write."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            now = self._clock()
            expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
            for k in expired:
                del self._entries[k]
            self._entries[key] = (value, now + ttl_seconds)

    def clear(self, prefix: str = "") -> int:
        with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            for key in keys:
                del self._entries[key]
            return len(keys)


class RedisCacheBackend:
    """Redis-backed TTL cache (expiry handled by Redis)."""

    def __init__(self, client: Redis):
        self.client = client

    def get(self, key: str) -> Optional[str]:
        raw = self.client.get(key)
        if raw is None:
            return None
        return raw.decode("utf-8") if isinstance(raw, bytes) else raw

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self.client.setex(key, ttl_seconds, value)

    def clear(self, prefix: str = "") -> int:
        keys = list(self.client.scan_iter(match=f"{prefix}*"))
        if keys:
            self.client.delete(*keys)
        return len(keys)


def make_cache_key(operation: str, params: Dict[str, Any]) -> str:
    """Stable key for an operation and its parameters."""
    payload = json.dumps(params, sort_keys=True, default=str, separators=(",", ":"))
    digest = hashlib.md5(payload.encode("utf-8")).hexdigest()[:16]
    return f"{KEY_PREFIX}:{operation}:{digest}"


def _normalize_filter(values: Optional[Sequence[str]]) -> Optional[List[str]]:
    return sorted(set(values)) if values else None


class CachedMetricsReader:
    """MetricsReader with a TTL cache in front of every operation."""

    def __init__(self, reader: MetricsReader, backend, ttl_seconds: int = CACHE_TTL_SECONDS):
        self.reader = reader
        self.backend = backend
        self.ttl_seconds = ttl_seconds

    def fetch_metrics(self, start_date, end_date, categories=None, types=None) -> List[DailyMetricOut]:
        params = {
            "start_date": start_date,
            "end_date": end_date,
            "categories": _normalize_filter(categories),
            "types": _normalize_filter(types),
        }
        return self._cached(
            "fetch_metrics",
            params,
            lambda: self.reader.fetch_metrics(start_date, end_date, categories=categories, types=types),
            _metrics_list,
        )

    def fetch_current_metrics(self) -> CurrentMetricsView:
        return self._cached("fetch_current_metrics", {}, self.reader.fetch_current_metrics, _current_view)

    def fetch_activity_data(self, days: int = DEFAULT_ACTIVITY_DAYS) -> List[ActivityPoint]:
        # The window moves with the calendar; keep keys per end date
        params = {"days": days, "today": self.reader.clock().date().isoformat()}
        return self._cached(
            "fetch_activity_data",
            params,
            lambda: self.reader.fetch_activity_data(days),
            _activity_list,
        )

    def get_collection_status(self) -> Optional[CollectionStatusOut]:
        return self._cached("get_collection_status", {}, self.reader.get_collection_status, _status)

    def recent_runs(self, limit: int = 10) -> List[CollectionStatusOut]:
        return self._cached(
            "recent_runs",
            {"limit": limit},
            lambda: self.reader.recent_runs(limit),
            _runs_list,
        )

    def list_definitions(self) -> List[MetricDefinitionOut]:
        return self._cached("list_definitions", {}, self.reader.list_definitions, _definitions_list)

    def invalidate(self) -> int:
        """Drop every cached read. Returns the number of entries removed."""
        removed = self.backend.clear(KEY_PREFIX)
        logger.info("[CACHE] Invalidated %d cached reads", removed)
        return removed

    def _cached(self, operation: str, params: Dict[str, Any], call: Callable[[], Any], adapter: TypeAdapter):
        key = make_cache_key(operation, params)

        cached_json = None
        try:
            cached_json = self.backend.get(key)
        except Exception as e:
            logger.warning("[CACHE] Read failed for %s, querying database: %s", operation, e)

        if cached_json is not None:
            try:
                result = adapter.validate_json(cached_json)
                logger.debug("[CACHE] Hit: %s", operation)
                return result
            except ValidationError as e:
                logger.warning("[CACHE] Discarding unreadable entry for %s: %s", operation, e)

        logger.debug("[CACHE] Miss: %s", operation)
        result = call()

        try:
            self.backend.set(key, adapter.dump_json(result).decode("utf-8"), self.ttl_seconds)
        except Exception as e:
            logger.warning("[CACHE] Write failed for %s: %s", operation, e)
        return result
