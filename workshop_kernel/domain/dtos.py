"""
Immutable DTOs for kernel entities.

Services and selectors return these instead of ORM instances so callers
never hold a live (or detached) row across transactions.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID


@dataclass(frozen=True)
class InventoryRecordInfo:
    """Snapshot of an InventoryRecord at read time."""

    id: UUID
    location_id: UUID
    sku: str | None
    name: str
    category: str | None
    supplier: str | None
    stock: int
    cost_price: Decimal
    retail_price: Decimal
    reorder_level: int
    version: int
    created_at: datetime
    updated_at: datetime

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.reorder_level
