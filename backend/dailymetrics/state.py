"""
Application State
=================

Process-wide objects shared across requests.

WHAT it stores:
- registry: MetricRegistry, loaded from metric_definitions on first use
- cache_backend: read API cache (memory or Redis, per METRICS_CACHE_BACKEND)
- redis_pool / redis_client: shared Redis connection pool (Redis backend only)

WHERE it's used:
- dailymetrics/deps.py: builds the per-request readers
- dailymetrics/routers/metrics.py: collection uses the shared registry

Design:
- Lazy module-level singletons guarded by a lock
- The registry is read-only once loaded; changing metric_definitions
  requires a restart (or reset())
"""

import logging
import threading
from typing import Optional, Union

from redis import ConnectionPool, Redis
from sqlalchemy.orm import Session

from dailymetrics.deps import get_settings
from dailymetrics.metrics.registry import MetricRegistry, load_registry
from dailymetrics.services.metrics_cache import MemoryCacheBackend, RedisCacheBackend

logger = logging.getLogger(__name__)

_lock = threading.Lock()

registry: Optional[MetricRegistry] = None
cache_backend: Optional[Union[MemoryCacheBackend, RedisCacheBackend]] = None

redis_pool: Optional[ConnectionPool] = None
redis_client: Optional[Redis] = None


def get_registry(db: Session) -> MetricRegistry:
    """Catalog loaded once per process."""
    global registry
    if registry is None:
        with _lock:
            if registry is None:
                registry = load_registry(db)
    return registry


def get_cache_backend() -> Union[MemoryCacheBackend, RedisCacheBackend]:
    """Read API cache backend selected by settings."""
    global cache_backend, redis_pool, redis_client
    if cache_backend is not None:
        return cache_backend

    with _lock:
        if cache_backend is None:
            settings = get_settings()
            if settings.METRICS_CACHE_BACKEND == "redis":
                redis_pool = ConnectionPool.from_url(
                    settings.REDIS_URL,
                    max_connections=20,  # Pool size for concurrent requests
                    decode_responses=False,
                )
                redis_client = Redis(connection_pool=redis_pool)
                cache_backend = RedisCacheBackend(redis_client)
                logger.info("[STATE] Redis cache backend initialized (max_connections=20)")
            else:
                cache_backend = MemoryCacheBackend()
                logger.info("[STATE] In-memory cache backend initialized")
    return cache_backend


def reset() -> None:
    """Forget the loaded registry and cache backend (tests, catalog changes)."""
    global registry, cache_backend, redis_pool, redis_client
    with _lock:
        if redis_pool is not None:
            redis_pool.disconnect()
        registry = None
        cache_backend = None
        redis_pool = None
        redis_client = None
