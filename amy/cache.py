"""
In-memory response cache for QuickBooks report results.

Provides:
- TTL-based expiration against an injected clock
- Bulk sweep of expired entries once the map grows past a threshold
- Entry age lookup so responses can report cache provenance
- Statistics tracking

Usage:
    from amy.cache import ResponseCache, cache_key

    cache = ResponseCache(ttl_seconds=3600, max_entries=50)

    key = cache_key("MedRock FL", "2024-01-01", "2024-03-31", "monthly")
    payload = cache.get(key)
    if payload is None:
        payload = await fetch(...)
        cache.set(key, payload)

The cache is process-wide and holds nothing across restarts. One instance is
built at startup and handed to the services that need it.
"""
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from amy.observability import get_logger

logger = get_logger(__name__)


def cache_key(
    location: str,
    start_date: str,
    end_date: str,
    granularity: str,
    accounting_method: Optional[str] = None,
) -> str:
    """
    Build a composite cache key.

    The accounting method is appended when given so Accrual and Cash
    reports for the same range do not collide.
    """
    parts = [location, str(start_date), str(end_date), str(granularity)]
    if accounting_method:
        parts.append(str(accounting_method))
    return ":".join(parts)


@dataclass
class CacheEntry:
    """A cached payload and the clock reading when it was stored."""

    key: str
    payload: Any
    inserted_at: float


@dataclass
class CacheStats:
    """Cache statistics for monitoring."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    evictions: int = 0
    sweeps: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        return (self.hits / total * 100) if total > 0 else 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "evictions": self.evictions,
            "sweeps": self.sweeps,
            "hit_rate_percent": round(self.hit_rate, 2),
        }

    def reset(self) -> None:
        """Reset all counters."""
        self.hits = 0
        self.misses = 0
        self.sets = 0
        self.evictions = 0
        self.sweeps = 0


class ResponseCache:
    """
    TTL cache keyed by (location, date range, granularity).

    Features:
    - Entries older than `ttl_seconds` are treated as missing and dropped on read
    - When the map holds more than `max_entries`, a `set` removes every expired
      entry in a single pass (not an LRU; live entries are never evicted)
    - `clock` defaults to time.monotonic and can be replaced in tests
    """

    def __init__(
        self,
        ttl_seconds: float = 3600,
        max_entries: int = 50,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._stats = CacheStats()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self._live_entry(key) is not None

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.inserted_at >= self.ttl_seconds

    def _live_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._is_expired(entry, self._clock()):
            del self._entries[key]
            self._stats.evictions += 1
            return None
        return entry

    def get(self, key: str) -> Optional[Any]:
        """
        Get a payload from the cache.

        Args:
            key: Cache key

        Returns:
            The stored payload, or None on a miss or after expiry
        """
        entry = self._live_entry(key)
        if entry is None:
            self._stats.misses += 1
            return None

        self._stats.hits += 1
        return entry.payload

    def set(self, key: str, payload: Any) -> None:
        """
        Store a payload, replacing any existing entry for the key.

        Args:
            key: Cache key
            payload: Value to cache (stored by reference)
        """
        self._entries[key] = CacheEntry(key=key, payload=payload, inserted_at=self._clock())
        self._stats.sets += 1

        if len(self._entries) > self.max_entries:
            self.sweep()

    def sweep(self) -> int:
        """
        Remove all expired entries in one pass.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
        for key in expired:
            del self._entries[key]

        self._stats.sweeps += 1
        self._stats.evictions += len(expired)
        if expired:
            logger.debug(f"Swept {len(expired)} expired cache entries", extra={"remaining": len(self._entries)})
        return len(expired)

    def age_seconds(self, key: str) -> Optional[int]:
        """Whole seconds since the entry was stored, or None if not cached."""
        entry = self._live_entry(key)
        if entry is None:
            return None
        return int(self._clock() - entry.inserted_at)

    def delete(self, key: str) -> bool:
        """Delete a key from the cache. Returns True if it existed."""
        return self._entries.pop(key, None) is not None

    def invalidate_location(self, location: str) -> int:
        """Drop every entry cached for a location. Returns the count removed."""
        prefix = f"{location}:"
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        if keys:
            logger.debug(f"Invalidated {len(keys)} cache entries for {location}")
        return len(keys)

    def clear(self) -> None:
        """Drop every entry."""
        self._entries.clear()

    def get_stats(self) -> dict:
        """Get cache statistics."""
        return {
            "entries": len(self._entries),
            "ttl_seconds": self.ttl_seconds,
            **self._stats.to_dict(),
        }

    def reset_stats(self) -> None:
        """Reset statistics counters."""
        self._stats.reset()
