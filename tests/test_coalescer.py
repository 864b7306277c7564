"""
Unit tests for the single-flight fetch coordinator.

Tests that concurrent callers share one upstream call, that a valid cache
entry short-circuits the network, that failures propagate to every caller
and never leave a stale pending entry, and that nothing is fetched before
authentication is ready.
"""
import asyncio

import pytest

from inventory_sync.cache import (
    CacheKey,
    CacheStore,
    FetchCoordinator,
    KeyState,
    ResourceType,
)
from inventory_sync.errors import (
    AuthRequiredError,
    FetchTimeoutError,
    TransientError,
)


KEY = CacheKey("A", ResourceType.INVENTORY, 0)


class CountingFetch:
    """Fetch operation that records calls and can be held open."""

    def __init__(self, result="snapshot", error=None):
        self.calls = 0
        self.result = result
        self.error = error
        self.release = None

    async def __call__(self):
        self.calls += 1
        if self.release is not None:
            await self.release.wait()
        else:
            await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return f"{self.result}-{self.calls}"


@pytest.fixture
def store(clock):
    return CacheStore(ttl_seconds=60.0, clock=clock)


@pytest.fixture
def coordinator(store):
    return FetchCoordinator(store, timeout=5.0)


# =============================================================================
# Single-Flight Tests
# =============================================================================

class TestSingleFlight:
    """Tests for request de-duplication."""

    def test_concurrent_requests_share_one_call(self, coordinator):
        fetch = CountingFetch()

        async def run():
            return await asyncio.gather(*[coordinator.request(KEY, fetch) for _ in range(10)])

        results = asyncio.run(run())

        assert fetch.calls == 1
        assert results == ["snapshot-1"] * 10
        assert coordinator.active_requests == 0

    def test_different_keys_fetch_independently(self, coordinator):
        fetch = CountingFetch()
        other = CacheKey("A", ResourceType.INVENTORY, 1)

        async def run():
            return await asyncio.gather(
                coordinator.request(KEY, fetch),
                coordinator.request(other, fetch),
            )

        asyncio.run(run())
        assert fetch.calls == 2

    def test_waiters_counted(self, coordinator):
        fetch = CountingFetch()

        async def run():
            fetch.release = asyncio.Event()
            tasks = [asyncio.create_task(coordinator.request(KEY, fetch)) for _ in range(3)]
            await asyncio.sleep(0)
            in_flight = coordinator.registry.get(KEY)
            waiters = in_flight.waiter_count
            state = coordinator.key_state(KEY)
            fetch.release.set()
            await asyncio.gather(*tasks)
            return waiters, state

        waiters, state = asyncio.run(run())
        assert waiters == 2
        assert state == KeyState.IN_FLIGHT


# =============================================================================
# Cache Interaction Tests
# =============================================================================

class TestCacheInteraction:
    """Tests for cache short-circuiting and force refresh."""

    def test_valid_entry_skips_network(self, coordinator, store):
        store.set(KEY, "cached")
        fetch = CountingFetch()

        result = asyncio.run(coordinator.request(KEY, fetch))

        assert result == "cached"
        assert fetch.calls == 0
        assert coordinator.key_state(KEY) == KeyState.CACHED

    def test_success_writes_back(self, coordinator, store):
        fetch = CountingFetch()
        asyncio.run(coordinator.request(KEY, fetch))

        assert store.get(KEY).data == "snapshot-1"
        # Second call within the TTL is served from cache
        asyncio.run(coordinator.request(KEY, fetch))
        assert fetch.calls == 1

    def test_expired_entry_refetches(self, coordinator, store, clock):
        fetch = CountingFetch()
        asyncio.run(coordinator.request(KEY, fetch))
        clock.advance(60)

        assert coordinator.key_state(KEY) == KeyState.IDLE
        result = asyncio.run(coordinator.request(KEY, fetch))
        assert result == "snapshot-2"

    def test_force_refresh_bypasses_and_overwrites(self, coordinator, store):
        store.set(KEY, "cached")
        fetch = CountingFetch(result="fresh")

        result = asyncio.run(coordinator.request(KEY, fetch, force_refresh=True))

        assert result == "fresh-1"
        assert store.get(KEY).data == "fresh-1"

    def test_force_refresh_joins_in_flight_fetch(self, coordinator):
        fetch = CountingFetch()

        async def run():
            fetch.release = asyncio.Event()
            first = asyncio.create_task(coordinator.request(KEY, fetch))
            await asyncio.sleep(0)
            second = asyncio.create_task(coordinator.request(KEY, fetch, force_refresh=True))
            await asyncio.sleep(0)
            fetch.release.set()
            return await asyncio.gather(first, second)

        results = asyncio.run(run())
        assert fetch.calls == 1
        assert results[0] == results[1]


# =============================================================================
# Failure Tests
# =============================================================================

class TestFailures:
    """Tests for error propagation and cleanup."""

    def test_failure_propagates_to_all_callers(self, coordinator, store):
        error = TransientError("boom", 503)
        fetch = CountingFetch(error=error)

        async def run():
            return await asyncio.gather(
                *[coordinator.request(KEY, fetch) for _ in range(3)],
                return_exceptions=True,
            )

        results = asyncio.run(run())

        assert fetch.calls == 1
        assert all(r is error for r in results)
        assert KEY not in coordinator.registry
        assert store.get(KEY) is None

    def test_failure_keeps_previous_snapshot(self, coordinator, store, clock):
        store.set(KEY, "old")
        clock.advance(61)
        fetch = CountingFetch(error=TransientError("boom"))

        with pytest.raises(TransientError):
            asyncio.run(coordinator.request(KEY, fetch))

        assert store.get(KEY).data == "old"

    def test_next_request_after_failure_refetches(self, coordinator):
        fetch = CountingFetch(error=TransientError("boom"))
        with pytest.raises(TransientError):
            asyncio.run(coordinator.request(KEY, fetch))

        fetch.error = None
        assert asyncio.run(coordinator.request(KEY, fetch)) == "snapshot-2"

    def test_waiter_timeout_leaves_fetch_running(self, store):
        coordinator = FetchCoordinator(store, timeout=0.01)
        fetch = CountingFetch()

        async def run():
            fetch.release = asyncio.Event()
            owner = asyncio.create_task(coordinator.request(KEY, fetch))
            await asyncio.sleep(0)
            with pytest.raises(FetchTimeoutError):
                await coordinator.request(KEY, fetch)
            still_running = KEY in coordinator.registry
            fetch.release.set()
            return still_running, await owner

        still_running, result = asyncio.run(run())
        assert still_running is True
        assert result == "snapshot-1"
        assert store.get(KEY).data == "snapshot-1"


# =============================================================================
# Readiness Tests
# =============================================================================

class TestReadiness:
    """Tests for the authentication gate."""

    def test_not_ready_issues_no_fetch(self, store):
        coordinator = FetchCoordinator(store, is_ready=lambda: False)
        fetch = CountingFetch()

        with pytest.raises(AuthRequiredError):
            asyncio.run(coordinator.request(KEY, fetch))

        assert fetch.calls == 0
        assert coordinator.active_requests == 0

    def test_not_ready_ignores_cache(self, store):
        store.set(KEY, "cached")
        coordinator = FetchCoordinator(store, is_ready=lambda: False)

        with pytest.raises(AuthRequiredError):
            asyncio.run(coordinator.request(KEY, CountingFetch()))

    def test_stats(self, coordinator):
        asyncio.run(coordinator.request(KEY, CountingFetch()))
        stats = coordinator.get_stats()
        assert stats["active_requests"] == 0
        assert stats["cache"]["writes"] == 1


# =============================================================================
# Cancellation Tests
# =============================================================================

class TestCancellation:
    """Tests for callers that go away while a fetch is running."""

    def test_cancelled_initiator_does_not_abort_fetch(self, coordinator, store):
        fetch = CountingFetch()

        async def run():
            fetch.release = asyncio.Event()
            owner = asyncio.create_task(coordinator.request(KEY, fetch))
            await asyncio.sleep(0)
            waiter = asyncio.create_task(coordinator.request(KEY, fetch))
            await asyncio.sleep(0)

            owner.cancel()
            with pytest.raises(asyncio.CancelledError):
                await owner
            fetch.release.set()
            return await waiter

        result = asyncio.run(run())

        assert result == "snapshot-1"
        assert fetch.calls == 1
        assert store.get(KEY).data == "snapshot-1"
        assert coordinator.active_requests == 0

    def test_stats_report_in_flight_age(self, coordinator):
        fetch = CountingFetch()

        async def run():
            fetch.release = asyncio.Event()
            task = asyncio.create_task(coordinator.request(KEY, fetch))
            await asyncio.sleep(0)
            stats = coordinator.get_stats()
            fetch.release.set()
            await task
            return stats

        stats = asyncio.run(run())

        assert stats["active_keys"] == [str(KEY)]
        assert stats["in_flight_seconds"][str(KEY)] >= 0
