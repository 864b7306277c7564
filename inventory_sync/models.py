"""
Pydantic models for inventory API payloads.
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class AdditionTransactionType(str, Enum):
    """Valid transaction types for stock additions."""
    RECEIPT = "RECEIPT"
    TRANSFER_IN = "TRANSFER_IN"
    ADJUSTMENT_IN = "ADJUSTMENT_IN"
    RETURN = "RETURN"


class WithdrawalTransactionType(str, Enum):
    """Valid transaction types for stock withdrawals."""
    ISSUE = "ISSUE"
    TRANSFER_OUT = "TRANSFER_OUT"
    ADJUSTMENT_OUT = "ADJUSTMENT_OUT"
    DAMAGE = "DAMAGE"
    THEFT = "THEFT"
    EXPIRED = "EXPIRED"


class ApiModel(BaseModel):
    """Base model accepting the API's camelCase field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ===== SCOPE SCHEMAS =====

class WarehouseSummary(ApiModel):
    """A warehouse the user can select as the active scope."""
    id: str
    name: str = ""
    location: Optional[str] = None
    is_active: bool = True


# ===== PAGINATION SCHEMAS =====

class ResourcePage(ApiModel):
    """One server-reported page of a paginated resource."""
    items: List[Any] = Field(default_factory=list)
    current_page: int = 0
    total_pages: int = 0
    total_items: int = 0
    has_more: bool = False

    @classmethod
    def empty(cls, page: int = 0) -> "ResourcePage":
        return cls(items=[], current_page=page, total_pages=0, total_items=0, has_more=False)


# ===== DASHBOARD SCHEMAS =====

class DashboardSummary(ApiModel):
    """
    Dashboard summary numbers.

    `is_empty` marks a sentinel result: a new account with no data yet, or a
    zeroed fallback after the retry budget is spent.
    """
    total_products: int = 0
    low_stock_count: int = 0
    total_categories: int = 0
    total_revenue: float = 0.0
    total_orders: int = 0
    avg_order_value: float = 0.0
    inventory_value: float = 0.0
    revenue_growth: float = 0.0
    order_growth: float = 0.0
    recent_activities: List[Dict[str, Any]] = Field(default_factory=list)
    last_updated: Optional[str] = None
    is_empty: bool = False

    @classmethod
    def empty(cls) -> "DashboardSummary":
        """Zeroed summary explicitly marked empty."""
        return cls(is_empty=True)

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "DashboardSummary":
        """Parse an API payload, deriving `is_empty` when the server omits it."""
        summary = cls.model_validate(payload or {})
        if "isEmpty" not in (payload or {}) and "is_empty" not in (payload or {}):
            summary.is_empty = (
                summary.total_products == 0
                and summary.total_categories == 0
                and summary.total_revenue == 0
            )
        return summary


# ===== MUTATION SCHEMAS =====

class StockMutation(ApiModel):
    """Payload for an add/withdraw stock request."""
    warehouse_id: str
    product_id: str
    quantity: int = Field(gt=0)
    transaction_type: Optional[str] = None
    notes: Optional[str] = None

    def to_payload(self, default_type: Enum) -> Dict[str, Any]:
        payload = self.model_dump(by_alias=True, exclude_none=True)
        payload["transactionType"] = self.transaction_type or default_type.value
        return payload
