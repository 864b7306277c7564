"""
Snapshot caching with lazy TTL, single-flight fetching and scope invalidation.
"""
from .core import (
    CacheEntry,
    CacheKey,
    KeyState,
    ResourceType,
    DEFAULT_TTL_SECONDS,
    GLOBAL_SCOPE,
    LIST_RESOURCE_TYPES,
)
from .store import CacheStore
from .coalescer import FetchCoordinator, InFlightRequest, PendingRequestRegistry

__all__ = [
    # Core types
    "CacheEntry",
    "CacheKey",
    "KeyState",
    "ResourceType",
    "DEFAULT_TTL_SECONDS",
    "GLOBAL_SCOPE",
    "LIST_RESOURCE_TYPES",
    # Store
    "CacheStore",
    # Coalescing
    "FetchCoordinator",
    "InFlightRequest",
    "PendingRequestRegistry",
]
