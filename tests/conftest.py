"""
Shared fixtures: a controllable clock and an in-memory inventory API.
"""
import asyncio
import math
from typing import Dict, List, Optional, Tuple

import pytest

from inventory_sync.cache.core import ResourceType
from inventory_sync.models import (
    DashboardSummary,
    ResourcePage,
    StockMutation,
    WarehouseSummary,
)
from inventory_sync.session import build_session


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeInventoryClient:
    """
    In-memory stand-in for InventoryApiClient.

    - `totals[(scope_id, resource_type)]` sets how many rows a list has
    - `failures` is a FIFO of exceptions raised by the next read calls
    - `gate`, when set to an asyncio.Event, holds every read until released
    """

    def __init__(self, totals: Optional[Dict[Tuple[str, ResourceType], int]] = None, page_size: int = 20):
        self.totals = totals or {}
        self.page_size = page_size
        self.calls: List[tuple] = []
        self.failures: List[Exception] = []
        self.mutation_error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.dashboard = DashboardSummary(
            total_products=12,
            total_categories=3,
            total_revenue=250.0,
            total_orders=8,
        )
        self.warehouses = [
            WarehouseSummary(id="A", name="Main Warehouse"),
            WarehouseSummary(id="B", name="Overflow"),
        ]
        self.closed = False

    async def _respond(self) -> None:
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if self.failures:
            raise self.failures.pop(0)

    def count(self, kind: str) -> int:
        return sum(1 for call in self.calls if call[0] == kind)

    async def get_page(self, resource_type: ResourceType, scope_id: str, page: int = 0, size: Optional[int] = None) -> ResourcePage:
        size = size or self.page_size
        self.calls.append(("page", resource_type, scope_id, page))
        await self._respond()

        total = self.totals.get((scope_id, resource_type), 0)
        start = page * size
        items = [f"{scope_id}-{resource_type.value}-{i}" for i in range(start, min(start + size, total))]
        return ResourcePage(
            items=items,
            current_page=page,
            total_pages=math.ceil(total / size),
            total_items=total,
            has_more=start + len(items) < total,
        )

    async def get_warehouses(self) -> List[WarehouseSummary]:
        self.calls.append(("warehouses",))
        await self._respond()
        return list(self.warehouses)

    async def get_dashboard_summary(self) -> DashboardSummary:
        self.calls.append(("dashboard",))
        await self._respond()
        return self.dashboard

    async def add_inventory(self, mutation: StockMutation) -> None:
        self.calls.append(("add", mutation.warehouse_id))
        await asyncio.sleep(0)
        if self.mutation_error is not None:
            raise self.mutation_error

    async def withdraw_inventory(self, mutation: StockMutation) -> None:
        self.calls.append(("withdraw", mutation.warehouse_id))
        await asyncio.sleep(0)
        if self.mutation_error is not None:
            raise self.mutation_error

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_client():
    return FakeInventoryClient(
        totals={
            ("A", ResourceType.INVENTORY): 45,
            ("A", ResourceType.ADDITIONS): 5,
            ("A", ResourceType.WITHDRAWALS): 3,
            ("B", ResourceType.INVENTORY): 7,
            ("B", ResourceType.ADDITIONS): 2,
            ("B", ResourceType.WITHDRAWALS): 1,
        }
    )


@pytest.fixture
def ready():
    """Mutable authentication readiness flag."""
    return {"ready": True}


@pytest.fixture
def session(fake_client, clock, ready):
    return build_session(
        client=fake_client,
        is_ready=lambda: ready["ready"],
        ttl_seconds=60.0,
        debounce_delay=0.05,
        clock=clock,
    )
