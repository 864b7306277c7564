"""
Accumulation of paginated results for one (scope, resource type) stream.
"""
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple

from .cache.coalescer import FetchCoordinator
from .cache.core import CacheKey, ResourceType
from .errors import ErrorKind
from .models import ResourcePage
from .retry_policy import RetryPolicy
from .view_models import StreamViewModel

logger = logging.getLogger("sync.pagination")


class LoadMode(Enum):
    """How a fetched page is combined with what is already loaded."""
    REPLACE = "replace"
    APPEND = "append"


@dataclass(frozen=True)
class AccumulatorState:
    """
    Loaded items and pagination flags for one stream.

    Never mutated; every transition builds a new state so readers see
    either the old items or the new ones, never a mix.
    """
    items: Tuple[Any, ...] = ()
    page: int = 0
    has_more: bool = False
    total_items: int = 0
    loading: bool = False
    loading_more: bool = False
    refreshing: bool = False
    error: Optional[str] = None


def apply_page(state: AccumulatorState, page: ResourcePage, mode: LoadMode) -> AccumulatorState:
    """
    Combine `page` with `state`.

    REPLACE drops everything loaded so far; APPEND concatenates in arrival
    order. `has_more` and `total_items` always take the server's latest values.
    """
    if mode == LoadMode.REPLACE:
        items = tuple(page.items)
    else:
        items = state.items + tuple(page.items)

    return AccumulatorState(
        items=items,
        page=page.current_page,
        has_more=page.has_more,
        total_items=page.total_items,
    )


PageFetcher = Callable[[int], Awaitable[ResourcePage]]


class PaginationAccumulator:
    """
    UI-facing stream for one paginated resource in one warehouse.

    - `load(page, mode)` fetches through the FetchCoordinator and applies
    - `load_more()` advances one page; repeated taps while a page is loading
      are dropped, not queued
    - `refresh()` re-fetches page 0 bypassing the cache and replaces
    - `discard()` retires the stream; late responses are ignored

    Each replace starts a new epoch, so a load-more that was in flight when
    a refresh began cannot append onto the refreshed list.
    """

    def __init__(
        self,
        scope_id: str,
        resource_type: ResourceType,
        coordinator: FetchCoordinator,
        fetch_page: PageFetcher,
        retry_policy: Optional[RetryPolicy] = None,
        generation: int = 0,
    ):
        """
        Initialize an empty stream.

        Args:
            scope_id: Warehouse this stream belongs to
            resource_type: Which list this stream accumulates
            coordinator: Shared single-flight, cache-aware fetcher
            fetch_page: Coroutine function fetching one page by number
            retry_policy: Failure classification for this stream
            generation: Scope-selection generation that created the stream
        """
        self.scope_id = scope_id
        self.resource_type = resource_type
        self.generation = generation
        self._coordinator = coordinator
        self._fetch_page = fetch_page
        self._policy = retry_policy or RetryPolicy(operation=resource_type.value)
        self._state = AccumulatorState()
        self._epoch = 0
        self._discarded = False

    @property
    def state(self) -> AccumulatorState:
        return self._state

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._policy

    @property
    def discarded(self) -> bool:
        return self._discarded

    def cache_key(self, page: int) -> CacheKey:
        return CacheKey(self.scope_id, self.resource_type, page)

    def apply_page(self, page: ResourcePage, mode: LoadMode) -> AccumulatorState:
        """Apply an already-fetched page to this stream."""
        self._state = apply_page(self._state, page, mode)
        return self._state

    async def load(
        self,
        page: int = 0,
        mode: LoadMode = LoadMode.REPLACE,
        force_refresh: bool = False,
    ) -> AccumulatorState:
        """
        Fetch `page` and combine it with the stream in `mode`.

        Raises:
            AuthRequiredError: Before any I/O if the caller is not ready
        """
        self._coordinator.ensure_ready()

        if mode == LoadMode.REPLACE:
            self._epoch += 1
            self._state = replace(
                self._state,
                loading=not force_refresh,
                refreshing=force_refresh,
                error=None,
            )
        epoch = self._epoch

        logger.debug(f"Loading {self.resource_type.value} page {page} for {self.scope_id} ({mode.value})")
        try:
            result = await self._coordinator.request(
                self.cache_key(page),
                lambda: self._fetch_page(page),
                force_refresh=force_refresh,
            )
        except Exception as e:
            if self._is_stale(epoch, mode):
                return self._state
            return self._handle_failure(e, page, mode)

        if self._is_stale(epoch, mode):
            return self._state

        self._policy.record_success()
        self._state = apply_page(self._state, result, mode)
        logger.info(
            f"{self.resource_type.value}@{self.scope_id}: {len(self._state.items)} of "
            f"{self._state.total_items} loaded (page {self._state.page}, hasMore: {self._state.has_more})"
        )
        return self._state

    async def load_more(self) -> AccumulatorState:
        """
        Load the next page in append mode.

        No-op while nothing more is available, while a page advance is
        already in flight, or while page 0 is still loading or refreshing.
        """
        state = self._state
        if not state.has_more or state.loading_more or state.loading or state.refreshing:
            logger.debug(
                f"Ignoring load more for {self.resource_type.value}@{self.scope_id} "
                f"(hasMore: {state.has_more}, loadingMore: {state.loading_more})"
            )
            return state

        self._coordinator.ensure_ready()
        self._state = replace(state, loading_more=True, error=None)
        return await self.load(state.page + 1, LoadMode.APPEND)

    async def refresh(self) -> AccumulatorState:
        """
        Re-fetch from page 0, bypassing the cache, and replace.

        Every cached page of this stream is evicted first, so later
        `load_more` calls fetch pages consistent with the new page 0.
        """
        self._coordinator.ensure_ready()
        logger.info(f"Refreshing {self.resource_type.value}@{self.scope_id}")
        self._coordinator.store.invalidate(self.scope_id, [self.resource_type])
        return await self.load(0, LoadMode.REPLACE, force_refresh=True)

    def discard(self) -> None:
        """Retire this stream; results still in flight will be dropped."""
        self._discarded = True

    def view(self) -> StreamViewModel:
        state = self._state
        return StreamViewModel(
            scope_id=self.scope_id,
            resource_type=self.resource_type.value,
            items=state.items,
            page=state.page,
            total_items=state.total_items,
            has_more=state.has_more,
            loading=state.loading,
            loading_more=state.loading_more,
            refreshing=state.refreshing,
            error=state.error,
            retry_count=self._policy.retry_count,
        )

    def _is_stale(self, epoch: int, mode: LoadMode) -> bool:
        if self._discarded:
            logger.info(
                f"Dropping {self.resource_type.value} response for retired scope {self.scope_id}"
            )
            return True
        if epoch != self._epoch:
            logger.debug(f"Dropping superseded {mode.value} response for {self.resource_type.value}")
            return True
        return False

    def _handle_failure(self, error: Exception, page: int, mode: LoadMode) -> AccumulatorState:
        outcome = self._policy.record_failure(error)

        if outcome.kind == ErrorKind.ABSENT:
            # No data for this warehouse: an empty list, not an error
            if mode == LoadMode.REPLACE:
                self._state = apply_page(self._state, ResourcePage.empty(page), mode)
            else:
                self._state = replace(self._state, has_more=False, loading_more=False)
            return self._state

        if mode == LoadMode.REPLACE:
            self._state = AccumulatorState(error=outcome.message)
        else:
            self._state = replace(self._state, loading_more=False, error=outcome.message)
        return self._state
