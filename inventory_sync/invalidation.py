"""
Cache invalidation after successful writes.
"""
import logging
from typing import Any, Awaitable, Callable, Iterable, Optional, Tuple

from .cache.core import GLOBAL_SCOPE, ResourceType
from .cache.store import CacheStore

logger = logging.getLogger("sync.invalidation")

# A single stock mutation changes the snapshot and both logs
STOCK_MUTATION_TYPES: Tuple[ResourceType, ...] = (
    ResourceType.INVENTORY,
    ResourceType.ADDITIONS,
    ResourceType.WITHDRAWALS,
)


class MutationInvalidator:
    """
    Evicts the cache entries a write can affect.

    Invalidation runs synchronously after the write succeeds and before its
    result is returned, so the next read for the scope is a guaranteed miss.
    Nothing is re-fetched here.
    """

    def __init__(self, store: CacheStore, invalidate_dashboard: bool = True):
        self._store = store
        self._invalidate_dashboard = invalidate_dashboard

    def invalidate_after_write(
        self,
        scope_id: str,
        resource_types: Iterable[ResourceType] = STOCK_MUTATION_TYPES,
    ) -> int:
        """
        Drop entries for `scope_id` of the given resource types.

        Returns:
            Number of entries removed
        """
        removed = self._store.invalidate(scope_id, resource_types)
        if self._invalidate_dashboard:
            removed += self._store.invalidate(GLOBAL_SCOPE, [ResourceType.DASHBOARD])
        logger.info(f"Write to '{scope_id}' invalidated {removed} cache entries")
        return removed

    async def run(
        self,
        scope_id: str,
        write_operation: Callable[[], Awaitable[Any]],
        resource_types: Optional[Iterable[ResourceType]] = None,
    ) -> Any:
        """
        Run `write_operation` and invalidate on success.

        A failed write (including a server-side validation rejection)
        propagates unchanged and leaves the cache untouched.
        """
        result = await write_operation()
        self.invalidate_after_write(
            scope_id,
            STOCK_MUTATION_TYPES if resource_types is None else resource_types,
        )
        return result
