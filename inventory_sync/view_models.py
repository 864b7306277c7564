"""
View-model snapshots handed to the UI layer.

Each snapshot is immutable; the UI re-reads after every operation instead
of holding references into live state.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .models import DashboardSummary


@dataclass(frozen=True)
class StreamViewModel:
    """One paginated list (inventory, additions or withdrawals) for a warehouse."""
    scope_id: str
    resource_type: str
    items: Tuple[Any, ...] = ()
    page: int = 0
    total_items: int = 0
    has_more: bool = False
    loading: bool = False
    loading_more: bool = False
    refreshing: bool = False
    error: Optional[str] = None
    retry_count: int = 0

    @property
    def count(self) -> int:
        return len(self.items)

    @property
    def footer_text(self) -> Optional[str]:
        """List footer: load-more prompt, end-of-list marker, or nothing."""
        if self.loading and not self.items:
            return None
        if self.has_more:
            if self.loading_more:
                return "Loading more..."
            return f"Load More ({self.count} of {self.total_items})"
        if self.items:
            return f"End of list ({self.count} of {self.total_items} items)"
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scopeId": self.scope_id,
            "resourceType": self.resource_type,
            "items": list(self.items),
            "page": self.page,
            "totalItems": self.total_items,
            "hasMore": self.has_more,
            "loading": self.loading,
            "loadingMore": self.loading_more,
            "refreshing": self.refreshing,
            "error": self.error,
            "retryCount": self.retry_count,
        }


@dataclass(frozen=True)
class DashboardViewModel:
    """Dashboard summary plus fetch state."""
    data: Optional[DashboardSummary] = None
    loading: bool = False
    refreshing: bool = False
    error: Optional[str] = None
    retry_count: int = 0
    rate_limited: bool = False
    can_retry: bool = True

    @property
    def show_error_banner(self) -> bool:
        return self.error is not None

    @property
    def show_empty_state(self) -> bool:
        """New account with no data yet: rendered as normal, not as an error."""
        return self.data is not None and self.data.is_empty and not self.loading

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": self.data.model_dump(by_alias=True) if self.data else None,
            "loading": self.loading,
            "refreshing": self.refreshing,
            "error": self.error,
            "retryCount": self.retry_count,
            "rateLimited": self.rate_limited,
            "canRetry": self.can_retry,
        }
