"""
Core cache data structures.
"""
from dataclasses import dataclass
from typing import Any, Optional
from enum import Enum

# Snapshots older than this are re-fetched on the next read
DEFAULT_TTL_SECONDS = 60.0

# Scope used for resources that are not partitioned by warehouse
GLOBAL_SCOPE = "*"


class ResourceType(Enum):
    """Parallel data streams tracked per scope."""
    INVENTORY = "inventory"        # current stock snapshot
    ADDITIONS = "additions"        # restock / addition log
    WITHDRAWALS = "withdrawals"    # sale / withdrawal log
    SCOPES = "scopes"              # list of available warehouses
    DASHBOARD = "dashboard"        # dashboard summary


# Resource types shown as paginated lists for a selected warehouse
LIST_RESOURCE_TYPES = (
    ResourceType.INVENTORY,
    ResourceType.ADDITIONS,
    ResourceType.WITHDRAWALS,
)


class KeyState(Enum):
    """Authoritative state of a single cache key."""
    IDLE = "idle"            # nothing cached (or expired), nothing in flight
    IN_FLIGHT = "in_flight"  # a fetch is pending for this key
    CACHED = "cached"        # a valid snapshot is available


@dataclass(frozen=True)
class CacheKey:
    """
    Composite key for a cached snapshot.

    `page` distinguishes the pages of a paginated resource; it is None for
    flat resources. Scope invalidation ignores it.
    """
    scope_id: str
    resource_type: ResourceType
    page: Optional[int] = None

    def __str__(self) -> str:
        parts = [self.resource_type.value, self.scope_id]
        if self.page is not None:
            parts.append(str(self.page))
        return ":".join(parts)


@dataclass(frozen=True)
class CacheEntry:
    """
    Last known good snapshot for a key.

    `timestamp` is a monotonic clock reading in seconds. Entries are never
    mutated; a later fetch replaces the whole entry.
    """
    data: Any
    timestamp: float

    def age_seconds(self, now: float) -> float:
        """Seconds since data was fetched."""
        return now - self.timestamp

    def is_fresh(self, now: float, ttl_seconds: float = DEFAULT_TTL_SECONDS) -> bool:
        """Check if data is within its TTL."""
        return self.age_seconds(now) < ttl_seconds
