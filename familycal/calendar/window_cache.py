"""Cache of materialized instances per (series, window, rule version).

Entries are dropped only when the series or its exceptions change; there is no
time-based expiry, since a stale expansion would show the wrong occurrences.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, NamedTuple, Optional

from familycal.calendar.models import MaterializedInstance, TimeWindow

logger = logging.getLogger(__name__)


class CacheKey(NamedTuple):
    series_id: str
    window_start: datetime
    window_end: datetime
    version: int


class ExpansionCache:
    """Cache for per-series materialization results.

    Example:
        cache = ExpansionCache(max_size=256)

        key = cache.make_key(series.id, window, series.version)
        cached = cache.get(key)
        if cached is None:
            cached = materialize(...)
            cache.set(key, cached)

        # On any edit to the series or one of its occurrences
        cache.invalidate_series(series.id)
    """

    def __init__(self, max_size: int = 256):
        """Initialize expansion cache.

        Args:
            max_size: Maximum number of cached windows (FIFO eviction when full)
        """
        self.cache: dict[CacheKey, tuple[MaterializedInstance, ...]] = {}
        self.max_size = max_size
        self.stats = {
            "hits": 0,
            "misses": 0,
            "evictions": 0,
            "invalidations": 0,
        }

    @classmethod
    def from_settings(cls, settings: Any) -> ExpansionCache:
        return cls(max_size=getattr(settings, "cache_max_entries", 256))

    @staticmethod
    def make_key(series_id: str, window: TimeWindow, version: int) -> CacheKey:
        return CacheKey(series_id, window.start, window.end, version)

    def get(self, key: CacheKey) -> Optional[tuple[MaterializedInstance, ...]]:
        """Get cached instances for a key.

        Args:
            key: Key from make_key()

        Returns:
            Cached instances or None if not cached
        """
        instances = self.cache.get(key)
        if instances is not None:
            self.stats["hits"] += 1
            logger.debug("Cache hit for %s", key)
            return instances

        self.stats["misses"] += 1
        logger.debug("Cache miss for %s", key)
        return None

    def set(self, key: CacheKey, instances: tuple[MaterializedInstance, ...]) -> None:
        self.cache[key] = instances

        # FIFO eviction, oldest inserted entry first
        if len(self.cache) > self.max_size:
            oldest_key = next(iter(self.cache))
            del self.cache[oldest_key]
            self.stats["evictions"] += 1
            logger.debug(
                "Evicted oldest cache entry: %s (cache size: %d/%d)",
                oldest_key,
                len(self.cache),
                self.max_size,
            )

    def invalidate_series(self, series_id: str) -> int:
        """Drop every cached window of one series.

        Args:
            series_id: Series whose definition or exceptions changed

        Returns:
            Number of entries removed
        """
        stale = [key for key in self.cache if key.series_id == series_id]
        for key in stale:
            del self.cache[key]
        self.stats["invalidations"] += 1

        logger.debug("Invalidated %d cached windows for series %s", len(stale), series_id)
        return len(stale)

    def get_stats(self) -> dict[str, Any]:
        """Counters plus hit_rate (percent of lookups served), current_size and max_size."""
        lookups = self.stats["hits"] + self.stats["misses"]
        return {
            **self.stats,
            "hit_rate": round(100 * self.stats["hits"] / lookups, 2) if lookups else 0.0,
            "current_size": len(self.cache),
            "max_size": self.max_size,
        }
