"""
HTTP client for the inventory API.

Blocking `requests` calls are pushed onto a worker thread with
`asyncio.to_thread` so the event loop is never held by network I/O.
HTTP failures are converted into the sync error taxonomy.
"""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

import requests
from dotenv import load_dotenv

from config.settings import settings

from .cache.core import ResourceType
from .errors import TransientError, error_for_status
from .models import (
    AdditionTransactionType,
    DashboardSummary,
    ResourcePage,
    StockMutation,
    WarehouseSummary,
    WithdrawalTransactionType,
)
from .resources import (
    ADD_STOCK_PATH,
    DASHBOARD_SUMMARY_PATH,
    WAREHOUSES_PATH,
    WITHDRAW_STOCK_PATH,
    list_path,
    parse_page,
    parse_warehouses,
    unwrap_data,
)
from .utils.helpers import safe_int

load_dotenv()

logger = logging.getLogger("api_client")


class InventoryApiClient:
    """
    Thin wrapper around the inventory REST endpoints.

    Authentication is the caller's concern: a token provider supplies the
    current bearer token, and no refresh is attempted here.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        timeout: Optional[float] = None,
        page_size: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        self._base_url = (base_url or settings.api_base_url).rstrip("/")
        self._token_provider = token_provider or (lambda: settings.api_token)
        self._timeout = settings.request_timeout_seconds if timeout is None else timeout
        self.page_size = page_size or settings.page_size
        self._session = session or requests.Session()

    def _get_headers(self) -> dict:
        """Get API authentication headers."""
        headers = {"Accept": "application/json"}
        token = self._token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Perform one blocking HTTP call.

        Returns:
            Decoded JSON body (None for empty bodies)

        Raises:
            TransientError: Connection failures, timeouts, 5xx
            RateLimitedError / NotFoundError / ValidationRejectedError /
            AuthRequiredError: mapped from the response status
        """
        url = f"{self._base_url}{path}"
        try:
            response = self._session.request(
                method,
                url,
                headers=self._get_headers(),
                params=params,
                json=json,
                timeout=self._timeout,
            )
            response.raise_for_status()
        except requests.HTTPError as e:
            raise self._translate_http_error(method, path, e.response) from e
        except requests.RequestException as e:
            logger.error(f"{method} {path} failed: {e}")
            raise TransientError(str(e)) from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"{method} {path} returned invalid JSON: {e}")
            raise TransientError(f"Invalid JSON from {path}", response.status_code) from e

    def _translate_http_error(
        self,
        method: str,
        path: str,
        response: requests.Response,
    ) -> Exception:
        status = response.status_code
        message = _error_message(response)
        retry_after = safe_int(response.headers.get("Retry-After"), 0) or None
        if status >= 500 or status == 429:
            logger.warning(f"{method} {path} -> {status}: {message}")
        else:
            logger.info(f"{method} {path} -> {status}: {message}")
        return error_for_status(status, message, retry_after)

    async def _call(self, method: str, path: str, **kwargs) -> Any:
        return await asyncio.to_thread(self._request, method, path, **kwargs)

    # =========================================================================
    # READ ENDPOINTS
    # =========================================================================

    async def get_warehouses(self) -> List[WarehouseSummary]:
        """List the warehouses available to the current user."""
        logger.debug("Fetching warehouses")
        response = await self._call("GET", WAREHOUSES_PATH)
        warehouses = parse_warehouses(response)
        logger.info(f"Loaded {len(warehouses)} warehouses")
        return warehouses

    async def get_page(
        self,
        resource_type: ResourceType,
        scope_id: str,
        page: int = 0,
        size: Optional[int] = None,
    ) -> ResourcePage:
        """Fetch one page of inventory, additions or withdrawals for a warehouse."""
        size = size or self.page_size
        path = list_path(resource_type, scope_id)
        logger.debug(f"Fetching {resource_type.value} page {page} (size {size}) for {scope_id}")
        response = await self._call("GET", path, params={"page": page, "size": size})
        result = parse_page(resource_type, response, page, size)
        logger.info(
            f"Loaded {len(result.items)} {resource_type.value} rows "
            f"(page {result.current_page + 1}/{result.total_pages}, "
            f"total: {result.total_items}, hasMore: {result.has_more})"
        )
        return result

    async def get_inventory_page(self, scope_id: str, page: int = 0, size: Optional[int] = None) -> ResourcePage:
        return await self.get_page(ResourceType.INVENTORY, scope_id, page, size)

    async def get_additions_page(self, scope_id: str, page: int = 0, size: Optional[int] = None) -> ResourcePage:
        return await self.get_page(ResourceType.ADDITIONS, scope_id, page, size)

    async def get_withdrawals_page(self, scope_id: str, page: int = 0, size: Optional[int] = None) -> ResourcePage:
        return await self.get_page(ResourceType.WITHDRAWALS, scope_id, page, size)

    async def get_dashboard_summary(self) -> DashboardSummary:
        """Fetch the dashboard summary."""
        response = await self._call("GET", DASHBOARD_SUMMARY_PATH)
        return DashboardSummary.from_api(unwrap_data(response) or {})

    # =========================================================================
    # MUTATION ENDPOINTS
    # =========================================================================

    async def add_inventory(self, mutation: StockMutation) -> None:
        """Add stock to a warehouse. Only success/failure is meaningful."""
        payload = mutation.to_payload(AdditionTransactionType.RECEIPT)
        logger.info(f"Adding {mutation.quantity} x {mutation.product_id} to {mutation.warehouse_id}")
        await self._call("POST", ADD_STOCK_PATH, json=payload)

    async def withdraw_inventory(self, mutation: StockMutation) -> None:
        """Withdraw stock from a warehouse. Only success/failure is meaningful."""
        payload = mutation.to_payload(WithdrawalTransactionType.ISSUE)
        logger.info(f"Withdrawing {mutation.quantity} x {mutation.product_id} from {mutation.warehouse_id}")
        await self._call("POST", WITHDRAW_STOCK_PATH, json=payload)

    def close(self) -> None:
        self._session.close()


def _error_message(response: requests.Response) -> str:
    """Best-effort human readable message from an error response."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        for field in ("message", "error", "detail"):
            if body.get(field):
                return str(body[field])
    if response.text:
        return response.text[:500]
    return f"HTTP {response.status_code}"
