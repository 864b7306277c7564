"""
Per-session wiring of the sync layer.

One SyncSession is built when the application session starts (after
sign-in) and shared by every screen. Tests build their own isolated
sessions.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .api_client import InventoryApiClient
from .cache.coalescer import FetchCoordinator
from .cache.store import CacheStore
from .dashboard import DashboardDataProvider
from .debounce import DebounceScheduler
from .invalidation import MutationInvalidator
from .warehouse_service import WarehouseDataService

logger = logging.getLogger("sync.session")


@dataclass
class SyncSession:
    """Collaborators shared by every screen of one application session."""
    store: CacheStore
    coordinator: FetchCoordinator
    scheduler: DebounceScheduler
    invalidator: MutationInvalidator
    client: InventoryApiClient
    warehouses: WarehouseDataService
    dashboard: DashboardDataProvider

    def close(self) -> None:
        """Cancel pending timers, drop cached data and release the HTTP session."""
        self.warehouses.close()
        self.scheduler.cancel_all()
        self.store.clear()
        self.client.close()
        logger.info("Sync session closed")


def build_session(
    client: Optional[InventoryApiClient] = None,
    is_ready: Optional[Callable[[], bool]] = None,
    ttl_seconds: Optional[float] = None,
    debounce_delay: Optional[float] = None,
    clock: Callable[[], float] = time.monotonic,
) -> SyncSession:
    """
    Construct a fresh, isolated set of sync collaborators.

    Args:
        client: API client (default: configured from settings)
        is_ready: Authentication readiness signal
        ttl_seconds: Cache TTL override
        debounce_delay: Debounce delay override in seconds
        clock: Monotonic time source for the cache
    """
    client = client or InventoryApiClient()
    store = CacheStore(ttl_seconds=ttl_seconds, clock=clock)
    coordinator = FetchCoordinator(store, is_ready=is_ready)
    scheduler = DebounceScheduler(delay=debounce_delay)
    invalidator = MutationInvalidator(store)

    return SyncSession(
        store=store,
        coordinator=coordinator,
        scheduler=scheduler,
        invalidator=invalidator,
        client=client,
        warehouses=WarehouseDataService(client, coordinator, invalidator, scheduler),
        dashboard=DashboardDataProvider(client, coordinator),
    )
