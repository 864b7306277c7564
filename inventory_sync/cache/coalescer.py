"""
Request coalescing to prevent duplicate upstream API calls.

When multiple concurrent requests ask for the same cache key, only one
upstream call is made and all requesters share the result.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from config.settings import settings

from ..errors import AuthRequiredError, FetchTimeoutError
from .core import CacheKey, KeyState
from .store import CacheStore

logger = logging.getLogger("sync.coalescer")


def _mark_retrieved(task: asyncio.Future) -> None:
    # A fetch whose callers all went away still has its failure consumed
    if not task.cancelled():
        task.exception()


@dataclass
class InFlightRequest:
    """Tracks an in-progress upstream request."""
    future: asyncio.Future
    started_at: float = field(default_factory=time.monotonic)
    waiter_count: int = 0


class PendingRequestRegistry:
    """
    Cache keys currently being fetched.

    An entry is removed only when its fetch settles, whether it succeeded
    or failed.
    """

    def __init__(self):
        self._in_flight: Dict[CacheKey, InFlightRequest] = {}

    def get(self, key: CacheKey) -> Optional[InFlightRequest]:
        return self._in_flight.get(key)

    def register(self, key: CacheKey, future: asyncio.Future) -> InFlightRequest:
        in_flight = InFlightRequest(future=future)
        self._in_flight[key] = in_flight
        return in_flight

    def settle(self, key: CacheKey) -> None:
        self._in_flight.pop(key, None)

    def keys(self) -> List[CacheKey]:
        return list(self._in_flight.keys())

    def items(self) -> List[Tuple[CacheKey, InFlightRequest]]:
        return list(self._in_flight.items())

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._in_flight

    def __len__(self) -> int:
        return len(self._in_flight)


class FetchCoordinator:
    """
    Wraps a fetch operation with cache short-circuiting and single-flight
    de-duplication.

    Pattern:
    - A valid cached snapshot is returned with no network activity
    - The first request for a missing key initiates the fetch
    - Subsequent requests for the same key await the same future
    - On success the snapshot is written back to the CacheStore
    - Failures are propagated unmodified to every caller

    Relies on the single-threaded event loop: registry and store mutations
    are never interleaved except at `await` points.

    Usage:
        coordinator = FetchCoordinator(store)
        page = await coordinator.request(
            CacheKey("wh-1", ResourceType.INVENTORY, 0),
            lambda: client.get_inventory_page("wh-1", 0),
        )
    """

    def __init__(
        self,
        store: CacheStore,
        is_ready: Optional[Callable[[], bool]] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize the coordinator.

        Args:
            store: Snapshot cache shared with the rest of the session
            is_ready: Authentication readiness signal; no fetch is issued
                while it returns False
            timeout: Max seconds a waiter waits on an in-flight fetch
        """
        self._store = store
        self._is_ready = is_ready or (lambda: True)
        self._timeout = settings.coalesce_timeout_seconds if timeout is None else timeout
        self._registry = PendingRequestRegistry()

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def registry(self) -> PendingRequestRegistry:
        return self._registry

    def ensure_ready(self) -> None:
        """Raise AuthRequiredError if the caller may not fetch yet."""
        if not self._is_ready():
            logger.info("Not ready to fetch, refusing request")
            raise AuthRequiredError("Authentication required before fetching data")

    async def request(
        self,
        key: CacheKey,
        fetch_operation: Callable[[], Awaitable[Any]],
        force_refresh: bool = False,
    ) -> Any:
        """
        Return a cached snapshot, join an in-flight fetch, or start a new one.

        Args:
            key: Cache key for the requested resource
            fetch_operation: Coroutine function performing the network call
            force_refresh: Bypass cache validity (still joins an in-flight fetch)

        Returns:
            The fetched data (shared among all concurrent callers)

        Raises:
            AuthRequiredError: If the readiness signal reports not ready
            FetchTimeoutError: If waiting for an in-flight fetch times out
            Exception: Any error from fetch_operation is propagated
        """
        self.ensure_ready()

        if not force_refresh:
            entry = self._store.get_valid(key)
            if entry is not None:
                return entry.data
        else:
            logger.info(f"FORCE REFRESH: {key}")

        in_flight = self._registry.get(key)
        if in_flight is not None:
            in_flight.waiter_count += 1
            logger.debug(
                f"Coalescing request for {key} "
                f"(waiters: {in_flight.waiter_count})"
            )
            return await self._wait(key, in_flight)

        task = asyncio.ensure_future(self._run(key, fetch_operation))
        task.add_done_callback(_mark_retrieved)
        self._registry.register(key, task)
        logger.debug(f"Initiating fetch for {key}")
        # The initiating caller can be cancelled; the fetch itself keeps running
        return await asyncio.shield(task)

    async def _run(self, key: CacheKey, fetch_operation: Callable[[], Awaitable[Any]]) -> Any:
        try:
            result = await fetch_operation()
        except Exception as e:
            logger.warning(f"Fetch failed for {key}: {e}")
            raise
        else:
            self._store.set(key, result)
            return result
        finally:
            self._registry.settle(key)

    async def _wait(self, key: CacheKey, in_flight: InFlightRequest) -> Any:
        try:
            return await asyncio.wait_for(
                asyncio.shield(in_flight.future), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"Timeout waiting for coalesced request: {key}")
            raise FetchTimeoutError(
                f"Request for {key} timed out after {self._timeout}s"
            )

    def key_state(self, key: CacheKey) -> KeyState:
        """Current state of `key`: idle, in flight, or cached."""
        if key in self._registry:
            return KeyState.IN_FLIGHT
        if self._store.is_valid(self._store.get(key)):
            return KeyState.CACHED
        return KeyState.IDLE

    @property
    def active_requests(self) -> int:
        """Number of currently in-flight requests."""
        return len(self._registry)

    def get_stats(self) -> Dict[str, Any]:
        """Get coordinator statistics."""
        now = time.monotonic()
        return {
            "active_requests": len(self._registry),
            "active_keys": [str(key) for key in self._registry.keys()],
            "in_flight_seconds": {
                str(key): round(now - in_flight.started_at, 3)
                for key, in_flight in self._registry.items()
            },
            "cache": self._store.get_stats(),
        }
