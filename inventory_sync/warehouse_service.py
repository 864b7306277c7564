"""
Warehouse data service: scope selection, per-scope list streams, the
warehouse list, and stock mutations.
"""
import asyncio
import logging
from functools import partial
from typing import Callable, Dict, List, Optional

from .api_client import InventoryApiClient
from .cache.coalescer import FetchCoordinator
from .cache.core import CacheKey, GLOBAL_SCOPE, LIST_RESOURCE_TYPES, ResourceType
from .debounce import DebounceScheduler, ScheduledTask
from .errors import AuthRequiredError, ErrorKind
from .invalidation import MutationInvalidator
from .models import StockMutation, WarehouseSummary
from .pagination import PaginationAccumulator
from .retry_policy import FetchState, RetryPolicy
from .view_models import StreamViewModel

logger = logging.getLogger("sync.warehouse")

# Debounce channel shared by tab and warehouse switches
TAB_SWITCH_CHANNEL = "warehouse-tab"

SCOPES_KEY = CacheKey(GLOBAL_SCOPE, ResourceType.SCOPES)


class WarehouseDataService:
    """
    Orchestrates the three list streams (inventory, additions, withdrawals)
    of the selected warehouse.

    Switching warehouse discards every stream of the previous one and
    creates fresh empty streams before any new fetch is issued. Each
    selection bumps a generation counter; streams from an older generation
    are retired, so a slow response for the old warehouse is never applied
    to the new selection.
    """

    def __init__(
        self,
        client: InventoryApiClient,
        coordinator: FetchCoordinator,
        invalidator: MutationInvalidator,
        scheduler: DebounceScheduler,
        policy_factory: Optional[Callable[[ResourceType], RetryPolicy]] = None,
    ):
        self._client = client
        self._coordinator = coordinator
        self._invalidator = invalidator
        self._scheduler = scheduler
        self._policy_factory = policy_factory or (lambda rt: RetryPolicy(operation=rt.value))

        self._scope_id: Optional[str] = None
        self._generation = 0
        self._streams: Dict[ResourceType, PaginationAccumulator] = {}
        self._scopes_policy = RetryPolicy(operation="warehouses")
        self._scopes_in_flight: Optional[asyncio.Future] = None

    @property
    def selected_scope(self) -> Optional[str]:
        return self._scope_id

    @property
    def generation(self) -> int:
        return self._generation

    # =========================================================================
    # WAREHOUSE LIST
    # =========================================================================

    async def list_scopes(self, force_refresh: bool = False) -> List[WarehouseSummary]:
        """
        Warehouses available to the user (cached for the TTL window).

        A missing endpoint or any failure yields an empty list; the failure
        is still recorded in `scopes_state`, once per load even when several
        callers share it.
        """
        self._coordinator.ensure_ready()
        if self._scopes_in_flight is None:
            self._scopes_in_flight = asyncio.ensure_future(self._load_scopes(force_refresh))
        return await asyncio.shield(self._scopes_in_flight)

    async def _load_scopes(self, force_refresh: bool) -> List[WarehouseSummary]:
        try:
            scopes = await self._coordinator.request(
                SCOPES_KEY, self._client.get_warehouses, force_refresh=force_refresh
            )
        except AuthRequiredError:
            raise
        except Exception as e:
            outcome = self._scopes_policy.record_failure(e)
            if outcome.kind != ErrorKind.ABSENT:
                logger.error(f"Failed to load warehouses: {e}")
            return []
        finally:
            self._scopes_in_flight = None

        self._scopes_policy.record_success()
        return scopes

    @property
    def scopes_state(self) -> FetchState:
        return self._scopes_policy.state

    # =========================================================================
    # SCOPE SELECTION
    # =========================================================================

    def select_scope(self, scope_id: str) -> None:
        """
        Make `scope_id` the active warehouse.

        Pending debounced loads are cancelled, the previous warehouse's
        streams are discarded, and three empty streams take their place.
        The previous warehouse's cache entries are kept rather than
        invalidated; they still expire with the TTL and make switching back
        cheap. Entries are evicted only by writes and list refreshes.
        """
        if scope_id == self._scope_id and self._streams:
            return

        self._scheduler.cancel(TAB_SWITCH_CHANNEL)
        for stream in self._streams.values():
            stream.discard()

        self._generation += 1
        self._scope_id = scope_id
        self._streams = {
            resource_type: self._new_stream(scope_id, resource_type)
            for resource_type in LIST_RESOURCE_TYPES
        }
        logger.info(f"Selected warehouse {scope_id} (generation {self._generation})")

    def _new_stream(self, scope_id: str, resource_type: ResourceType) -> PaginationAccumulator:
        return PaginationAccumulator(
            scope_id=scope_id,
            resource_type=resource_type,
            coordinator=self._coordinator,
            fetch_page=partial(self._client.get_page, resource_type, scope_id),
            retry_policy=self._policy_factory(resource_type),
            generation=self._generation,
        )

    def stream(self, resource_type: ResourceType) -> PaginationAccumulator:
        if self._scope_id is None:
            raise LookupError("No warehouse selected")
        try:
            return self._streams[resource_type]
        except KeyError:
            raise ValueError(f"{resource_type.value} is not a warehouse list")

    def view(self, resource_type: ResourceType) -> StreamViewModel:
        return self.stream(resource_type).view()

    # =========================================================================
    # LIST OPERATIONS
    # =========================================================================

    async def load(self, resource_type: ResourceType, force_refresh: bool = False) -> StreamViewModel:
        """Load the first page of a list (replace mode)."""
        stream = self.stream(resource_type)
        if force_refresh:
            await stream.refresh()
        else:
            await stream.load()
        self._warn_if_superseded(stream)
        return stream.view()

    async def load_more(self, resource_type: ResourceType) -> StreamViewModel:
        stream = self.stream(resource_type)
        await stream.load_more()
        self._warn_if_superseded(stream)
        return stream.view()

    async def refresh(self, resource_type: ResourceType) -> StreamViewModel:
        """Pull-to-refresh: page 0, bypassing the cache."""
        return await self.load(resource_type, force_refresh=True)

    def schedule_load(self, resource_type: ResourceType, force_refresh: bool = False) -> ScheduledTask:
        """
        Debounced load for tab or warehouse switches.

        Only the last call within the debounce window runs.
        """
        return self._scheduler.schedule(
            TAB_SWITCH_CHANNEL, self._scheduled_load, resource_type, force_refresh
        )

    async def _scheduled_load(self, resource_type: ResourceType, force_refresh: bool) -> Optional[StreamViewModel]:
        try:
            self._coordinator.ensure_ready()
        except AuthRequiredError:
            logger.info("Not ready, skipping scheduled load")
            return None
        if self._scope_id is None:
            logger.info("No warehouse selected, skipping scheduled load")
            return None
        return await self.load(resource_type, force_refresh=force_refresh)

    def _warn_if_superseded(self, stream: PaginationAccumulator) -> None:
        if stream.generation != self._generation:
            logger.info(
                f"Warehouse changed to {self._scope_id} while loading "
                f"{stream.resource_type.value} for {stream.scope_id}"
            )

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    async def add_stock(self, mutation: StockMutation) -> None:
        """Add stock; on success the warehouse's cached views are invalidated."""
        self._coordinator.ensure_ready()
        await self._invalidator.run(
            mutation.warehouse_id, partial(self._client.add_inventory, mutation)
        )
        logger.info(f"Stock added to {mutation.warehouse_id}, cache cleared")

    async def withdraw_stock(self, mutation: StockMutation) -> None:
        """Withdraw stock; on success the warehouse's cached views are invalidated."""
        self._coordinator.ensure_ready()
        await self._invalidator.run(
            mutation.warehouse_id, partial(self._client.withdraw_inventory, mutation)
        )
        logger.info(f"Stock withdrawn from {mutation.warehouse_id}, cache cleared")

    def close(self) -> None:
        """Tear down when the owning view goes away."""
        self._scheduler.cancel(TAB_SWITCH_CHANNEL)
        for stream in self._streams.values():
            stream.discard()
        self._streams = {}
        self._scope_id = None
