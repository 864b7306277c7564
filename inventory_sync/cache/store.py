"""
Time-bounded snapshot store keyed by (scope, resource type).
"""
import logging
import time
from typing import Any, Callable, Dict, Iterable, Optional

from config.settings import settings

from .core import CacheEntry, CacheKey, ResourceType

logger = logging.getLogger("sync.cache")


class CacheStore:
    """
    Read-through snapshot cache with:
    - Fixed TTL checked lazily at read time (no background eviction)
    - Overwrite-only writes (no merging)
    - Scope-wide invalidation across all resource types
    - Hit/miss statistics

    One instance is constructed per application session and passed to its
    consumers.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the store.

        Args:
            ttl_seconds: Validity window for entries (default from settings)
            clock: Monotonic time source in seconds
        """
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._ttl = settings.cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock

        self._stats = {
            "hits": 0,
            "misses": 0,
            "writes": 0,
            "invalidations": 0,
        }

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def now(self) -> float:
        return self._clock()

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        """Return the stored entry for `key`, valid or not."""
        return self._entries.get(key)

    def is_valid(self, entry: Optional[CacheEntry]) -> bool:
        """True while `now - timestamp < ttl`."""
        if entry is None:
            return False
        return entry.is_fresh(self._clock(), self._ttl)

    def get_valid(self, key: CacheKey) -> Optional[CacheEntry]:
        """
        Return the entry for `key` only if it is still within its TTL.

        Records a hit or a miss.
        """
        entry = self._entries.get(key)
        if self.is_valid(entry):
            remaining = self._ttl - entry.age_seconds(self._clock())
            logger.debug(f"CACHE HIT: {key} [{remaining:.0f}s remaining]")
            self._stats["hits"] += 1
            return entry

        if entry is None:
            logger.debug(f"CACHE MISS: {key}")
        else:
            logger.debug(f"CACHE EXPIRED: {key} [age={entry.age_seconds(self._clock()):.1f}s]")
        self._stats["misses"] += 1
        return None

    def set(self, key: CacheKey, data: Any) -> CacheEntry:
        """Store `data` under `key`, replacing any previous entry."""
        entry = CacheEntry(data=data, timestamp=self._clock())
        self._entries[key] = entry
        self._stats["writes"] += 1
        return entry

    def invalidate(
        self,
        scope_id: str,
        resource_types: Optional[Iterable[ResourceType]] = None,
    ) -> int:
        """
        Remove every entry for `scope_id`.

        Args:
            scope_id: Scope whose entries should be dropped
            resource_types: Restrict removal to these types (default: all)

        Returns:
            Number of entries removed
        """
        types = set(resource_types) if resource_types is not None else None
        to_delete = [
            key for key in self._entries
            if key.scope_id == scope_id
            and (types is None or key.resource_type in types)
        ]
        for key in to_delete:
            del self._entries[key]

        self._stats["invalidations"] += len(to_delete)
        logger.info(f"Invalidated {len(to_delete)} entries for scope '{scope_id}'")
        return len(to_delete)

    def invalidate_key(self, key: CacheKey) -> bool:
        """
        Invalidate a specific cache entry.

        Returns:
            True if entry was found and removed
        """
        if key in self._entries:
            del self._entries[key]
            self._stats["invalidations"] += 1
            logger.info(f"Invalidated cache: {key}")
            return True
        return False

    def clear(self) -> int:
        """
        Clear all cache entries.

        Returns:
            Number of entries cleared
        """
        count = len(self._entries)
        self._entries.clear()
        logger.info(f"Cleared {count} cache entries")
        return count

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        lookups = self._stats["hits"] + self._stats["misses"]
        hit_rate = (self._stats["hits"] / lookups * 100) if lookups > 0 else 0

        return {
            "entries": len(self._entries),
            "hits": self._stats["hits"],
            "misses": self._stats["misses"],
            "writes": self._stats["writes"],
            "invalidations": self._stats["invalidations"],
            "hit_rate_percent": round(hit_rate, 1),
        }
