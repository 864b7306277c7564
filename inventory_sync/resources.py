"""
Endpoint mapping and response parsing per resource type.

The backend is inconsistent about where it puts list data, so parsing
accepts every shape it has been observed to return:
1. Resource field at top level: {"inventory": [...], "hasMore": ...}
2. Resource field nested in data: {"data": {"inventory": [...]}}
3. Direct array: [...]
4. Array in data: {"data": [...]}
5. Paginated content: {"data": {"content": [...]}}
"""
import logging
import math
from typing import Any, Dict, List, Optional

from .cache.core import ResourceType
from .models import ResourcePage, WarehouseSummary
from .utils.helpers import safe_bool, safe_int, safe_str

logger = logging.getLogger("sync.resources")


WAREHOUSES_PATH = "/api/warehouses"
DASHBOARD_SUMMARY_PATH = "/api/dashboard/summary"
ADD_STOCK_PATH = "/api/warehouse-inventory/add"
WITHDRAW_STOCK_PATH = "/api/warehouse-inventory/withdraw"

# Paginated list endpoints, keyed by resource type
LIST_PATHS: Dict[ResourceType, str] = {
    ResourceType.INVENTORY: "/api/warehouse-inventory/warehouse/{scope_id}",
    ResourceType.ADDITIONS: "/api/warehouse-inventory/warehouse/{scope_id}/additions",
    ResourceType.WITHDRAWALS: "/api/warehouse-inventory/warehouse/{scope_id}/withdrawals",
}

# Field carrying the item array in each list response
ITEM_FIELDS: Dict[ResourceType, str] = {
    ResourceType.INVENTORY: "inventory",
    ResourceType.ADDITIONS: "additions",
    ResourceType.WITHDRAWALS: "withdrawals",
}


def list_path(resource_type: ResourceType, scope_id: str) -> str:
    """Endpoint path for a paginated resource in one scope."""
    try:
        template = LIST_PATHS[resource_type]
    except KeyError:
        raise ValueError(f"{resource_type.value} is not a paginated resource")
    return template.format(scope_id=scope_id)


def extract_array(response: Any, context: str) -> List[Any]:
    """Pull a list out of a generic response (shapes 3-5)."""
    data = response.get("data", response) if isinstance(response, dict) else response

    if isinstance(data, list):
        return data

    if isinstance(data, dict) and isinstance(data.get("content"), list):
        return data["content"]

    if data is None:
        logger.warning(f"{context} returned no data")
        return []

    logger.warning(f"{context} unexpected format: {type(data).__name__}")
    return []


def extract_items(response: Any, field: str, context: str) -> List[Any]:
    """Pull the item array for `field` out of a list response (shapes 1-5)."""
    if isinstance(response, dict) and isinstance(response.get(field), list):
        return response[field]

    if isinstance(response, list):
        return response

    data = response.get("data") if isinstance(response, dict) else None
    if isinstance(data, dict) and isinstance(data.get(field), list):
        return data[field]

    return extract_array(response, context)


def parse_page(
    resource_type: ResourceType,
    response: Any,
    page: int,
    size: int,
) -> ResourcePage:
    """
    Build a ResourcePage from a list response.

    Missing pagination metadata is derived: `hasMore` from whether the page
    came back full, `totalItems` from the item count, `totalPages` from
    `totalItems / size`.
    """
    items = extract_items(response, ITEM_FIELDS[resource_type], f"{resource_type.value} API")
    meta = response if isinstance(response, dict) else {}

    total_items = safe_int(meta.get("totalItems"), len(items))
    has_more = safe_bool(meta.get("hasMore"))
    if has_more is None:
        has_more = len(items) >= size

    total_pages = meta.get("totalPages")
    if total_pages is None:
        total_pages = math.ceil(total_items / size) if size > 0 else 0

    return ResourcePage(
        items=items,
        current_page=safe_int(meta.get("currentPage"), page),
        total_pages=safe_int(total_pages),
        total_items=total_items,
        has_more=has_more,
    )


def parse_warehouses(response: Any) -> List[WarehouseSummary]:
    """Parse the warehouse list, skipping rows without an id."""
    warehouses = []
    for row in extract_array(response, "Warehouses API"):
        if not isinstance(row, dict) or row.get("id") is None:
            continue
        row = dict(row, id=safe_str(row["id"]))
        warehouses.append(WarehouseSummary.model_validate(row))
    return warehouses


def unwrap_data(response: Any) -> Optional[Dict[str, Any]]:
    """Return `response["data"]` when the API wraps an object, else the response."""
    if isinstance(response, dict) and isinstance(response.get("data"), dict):
        return response["data"]
    return response if isinstance(response, dict) else None
