"""
Dashboard data provider.

A failing or empty dashboard must not look broken: a new account with no
data reads as a normal zero state, and a dashboard that keeps failing falls
back to a zeroed summary with a retry affordance.
"""
import asyncio
import logging
from typing import Optional

from .api_client import InventoryApiClient
from .cache.coalescer import FetchCoordinator
from .cache.core import CacheKey, GLOBAL_SCOPE, ResourceType
from .errors import ErrorKind
from .models import DashboardSummary
from .retry_policy import RetryPolicy
from .view_models import DashboardViewModel

logger = logging.getLogger("sync.dashboard")

DASHBOARD_KEY = CacheKey(GLOBAL_SCOPE, ResourceType.DASHBOARD)


class DashboardDataProvider:
    """Fetches the dashboard summary through the shared coordinator."""

    def __init__(
        self,
        client: InventoryApiClient,
        coordinator: FetchCoordinator,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self._client = client
        self._coordinator = coordinator
        self._policy = retry_policy or RetryPolicy(operation="dashboard summary")
        self._data: Optional[DashboardSummary] = None
        self._in_flight: Optional[asyncio.Future] = None

    @property
    def data(self) -> Optional[DashboardSummary]:
        return self._data

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._policy

    async def fetch(self, force_refresh: bool = False) -> DashboardViewModel:
        """
        Load the summary.

        Callers arriving while a load is running join it; its outcome is
        recorded in the retry policy once.

        Raises:
            AuthRequiredError: Before any I/O if the caller is not ready
        """
        self._coordinator.ensure_ready()

        if self._in_flight is None:
            self._in_flight = asyncio.ensure_future(self._load(force_refresh))
        else:
            logger.debug("Dashboard load already running, joining it")
        await asyncio.shield(self._in_flight)
        return self.view()

    async def _load(self, force_refresh: bool) -> None:
        self._policy.begin(refreshing=force_refresh)
        try:
            await self._fetch_summary(force_refresh)
        finally:
            self._in_flight = None

    async def _fetch_summary(self, force_refresh: bool) -> None:
        try:
            summary = await self._coordinator.request(
                DASHBOARD_KEY,
                self._client.get_dashboard_summary,
                force_refresh=force_refresh,
            )
        except Exception as e:
            outcome = self._policy.record_failure(e)
            if outcome.use_fallback:
                self._data = DashboardSummary.empty()
                if outcome.kind == ErrorKind.ABSENT:
                    logger.info("Dashboard not available yet - showing zero states")
            return

        self._policy.record_success()
        self._data = summary
        if summary.is_empty:
            logger.info("Dashboard data is empty - showing zero states")

    async def refresh(self) -> DashboardViewModel:
        """User-initiated refresh; bypasses the cache unless a load is already running."""
        return await self.fetch(force_refresh=True)

    async def ensure_loaded(self) -> DashboardViewModel:
        """
        Automatic load (screen focus, app resume).

        Skipped once the policy has stopped automatic attempts; the user
        can still refresh manually.
        """
        if not self._policy.should_auto_fetch:
            logger.debug("Automatic dashboard fetch suppressed by retry policy")
            return self.view()
        return await self.fetch()

    def view(self) -> DashboardViewModel:
        state = self._policy.state
        return DashboardViewModel(
            data=self._data,
            loading=state.loading,
            refreshing=state.refreshing,
            error=state.error,
            retry_count=state.retry_count,
            rate_limited=state.rate_limited,
            can_retry=True,
        )
