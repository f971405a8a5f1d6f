"""In-process metrics cache with per-type TTLs.

Key features:
- Keys derived from (metric type, filters) with filter keys sorted
- Lazy eviction: expired entries are dropped by the read that finds them
- Invalidation by exact type tag or by regex over keys
- Corrupt entries are treated as misses and dropped

All mutations are synchronous, so no locking is needed on a single event
loop. The cache is not thread-safe.
"""

import json
import re
import time
from collections.abc import Callable, Iterable
from typing import Any

from occmetrics.core.logging import get_logger

from .models import CacheEntry


logger = get_logger(__name__)


DEFAULT_TTL_SECONDS = 300
SHORT_TTL_SECONDS = 60
REALTIME_TYPES = ("dashboard", "realtime")


def _string_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(key): _string_keys(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_string_keys(item) for item in value]
    return value


class MetricsCache:
    """TTL cache keyed by metric type and filter set."""

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        short_ttl: float = SHORT_TTL_SECONDS,
        realtime_types: Iterable[str] = REALTIME_TYPES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            default_ttl: TTL in seconds for ordinary metric types
            short_ttl: TTL in seconds for near-real-time metric types
            realtime_types: Metric types that get ``short_ttl``
            clock: Monotonic clock returning seconds
        """
        self.default_ttl = default_ttl
        self.short_ttl = short_ttl
        self.realtime_types = frozenset(realtime_types)
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    # ==========================================================================
    # Keys and TTLs
    # ==========================================================================

    @staticmethod
    def generate_key(metric_type: str, filters: dict[str, Any] | None = None) -> str:
        """Canonical key; insensitive to filter key order.

        Mapping keys are compared as strings, so mixed key types still sort.
        """
        serialized = json.dumps(
            _string_keys(filters or {}),
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )
        return f"{metric_type}_{serialized}"

    def ttl_for(self, metric_type: str) -> float:
        return self.short_ttl if metric_type in self.realtime_types else self.default_ttl

    # ==========================================================================
    # Reads and writes
    # ==========================================================================

    def get(self, metric_type: str, filters: dict[str, Any] | None = None) -> Any | None:
        """Cached value, or ``None`` on a miss (absent, expired or corrupt)."""
        key = self.generate_key(metric_type, filters)
        entry = self._entries.get(key)

        if entry is None:
            self._misses += 1
            return None

        try:
            expired = entry.is_expired(self._clock())
            data = entry.data
        except (AttributeError, TypeError) as e:
            logger.warning("metrics_cache_corrupt_entry", key=key, error=str(e))
            del self._entries[key]
            self._misses += 1
            return None

        if expired:
            del self._entries[key]
            self._misses += 1
            logger.debug("metrics_cache_expired", key=key, metric_type=metric_type)
            return None

        self._hits += 1
        logger.debug("metrics_cache_hit", key=key, metric_type=metric_type)
        return data

    def set(
        self,
        metric_type: str,
        data: Any,
        filters: dict[str, Any] | None = None,
        ttl: float | None = None,
    ) -> CacheEntry:
        """Store ``data``, replacing any entry for the same type and filters."""
        key = self.generate_key(metric_type, filters)
        now = self._clock()
        effective_ttl = self.ttl_for(metric_type) if ttl is None else ttl

        entry = CacheEntry(
            key=key,
            data=data,
            expiry=now + effective_ttl,
            type=metric_type,
            created_at=now,
            filters=dict(filters or {}),
        )
        self._entries[key] = entry
        logger.debug("metrics_cache_set", key=key, ttl=effective_ttl)
        return entry

    # ==========================================================================
    # Invalidation and housekeeping
    # ==========================================================================

    def invalidate(self, pattern: str | re.Pattern[str]) -> int:
        """Drop entries by exact type tag (``str``) or key regex (``re.Pattern``).

        Returns:
            Number of entries removed
        """
        if isinstance(pattern, re.Pattern):
            doomed = [key for key in self._entries if pattern.search(key)]
        else:
            doomed = [
                key
                for key, entry in self._entries.items()
                if getattr(entry, "type", None) == pattern
            ]

        for key in doomed:
            del self._entries[key]

        logger.info(
            "metrics_cache_invalidated",
            pattern=pattern.pattern if isinstance(pattern, re.Pattern) else pattern,
            removed=len(doomed),
        )
        return len(doomed)

    def cleanup(self) -> int:
        """Proactively drop every expired entry."""
        now = self._clock()
        doomed = []
        for key, entry in self._entries.items():
            try:
                if entry.is_expired(now):
                    doomed.append(key)
            except (AttributeError, TypeError):
                doomed.append(key)

        for key in doomed:
            del self._entries[key]

        if doomed:
            logger.info("metrics_cache_cleanup", removed=len(doomed))
        return len(doomed)

    def clear(self) -> int:
        removed = len(self._entries)
        self._entries.clear()
        logger.info("metrics_cache_cleared", removed=removed)
        return removed

    def get_stats(self) -> dict[str, Any]:
        """Entry counts plus hit/miss counters."""
        now = self._clock()
        expired = 0
        by_type: dict[str, int] = {}
        for entry in self._entries.values():
            try:
                if entry.is_expired(now):
                    expired += 1
                    continue
            except (AttributeError, TypeError):
                expired += 1
                continue
            by_type[entry.type] = by_type.get(entry.type, 0) + 1

        lookups = self._hits + self._misses
        return {
            "total_entries": len(self._entries),
            "valid_entries": len(self._entries) - expired,
            "expired_entries": expired,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / lookups * 100, 1) if lookups else 0.0,
            "by_type": by_type,
        }
