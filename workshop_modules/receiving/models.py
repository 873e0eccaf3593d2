"""
Receiving Domain Models (``workshop_modules.receiving.models``).

Responsibility
--------------
Frozen value objects for purchase orders, their items, and the receptions
(goods-received records) appended against them.

Architecture
------------
Layer: **Modules** -- pure data structures, no I/O.  Inputs to the engine
(``PurchaseOrderLine``, ``ReceiptLine``) validate their own shape on
construction; outputs (``*Info``, ``ReceiveResult``) are snapshots built
from ORM rows after the transaction commits.

Invariants
----------
- Quantities are whole units; costs are ``Decimal``.
- ``PurchaseOrderItemInfo.received_quantity`` never exceeds ``quantity``.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from workshop_kernel.db.types import to_decimal
from workshop_kernel.exceptions import InvalidPurchaseOrderError, InvalidQuantityError


class PurchaseOrderStatus(str, Enum):
    DRAFT = "draft"
    ORDERED = "ordered"
    PARTIALLY_RECEIVED = "partially_received"
    RECEIVED = "received"
    CANCELLED = "cancelled"


class OverReceiptPolicy(str, Enum):
    """What ``receive`` does when a line exceeds the remaining quantity."""
    REJECT = "reject"
    CLAMP = "clamp"


@dataclass(frozen=True)
class PurchaseOrderLine:
    """One requested line when creating a purchase order."""
    inventory_item_id: UUID
    name: str
    quantity: int
    cost: Decimal

    def __post_init__(self):
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) \
                or self.quantity <= 0:
            raise InvalidQuantityError(self.name, self.quantity)
        try:
            cost = to_decimal(self.cost)
        except ValueError as exc:
            raise InvalidPurchaseOrderError(
                f"cost for {self.name} is not a number: {self.cost!r}"
            ) from exc
        if cost < 0:
            raise InvalidPurchaseOrderError(f"cost for {self.name} cannot be negative")
        object.__setattr__(self, "cost", cost)

    @property
    def line_total(self) -> Decimal:
        return self.cost * self.quantity


@dataclass(frozen=True)
class ReceiptLine:
    """
    Quantity of one PO item that physically arrived.

    Zero is allowed here (the line is dropped by the engine); negative or
    non-integer quantities are rejected immediately.
    """
    inventory_item_id: UUID
    quantity_received: int
    name: str = ""

    def __post_init__(self):
        if isinstance(self.quantity_received, bool) \
                or not isinstance(self.quantity_received, int) \
                or self.quantity_received < 0:
            raise InvalidQuantityError(
                self.name or str(self.inventory_item_id), self.quantity_received
            )


@dataclass(frozen=True)
class PurchaseOrderItemInfo:
    id: UUID
    inventory_item_id: UUID
    name: str
    quantity: int
    cost: Decimal
    received_quantity: int

    @property
    def remaining_quantity(self) -> int:
        return self.quantity - self.received_quantity

    @property
    def is_complete(self) -> bool:
        return self.received_quantity >= self.quantity


@dataclass(frozen=True)
class ReceptionItemInfo:
    inventory_item_id: UUID
    name: str
    quantity_received: int


@dataclass(frozen=True)
class ReceptionInfo:
    """An immutable goods-received record."""
    id: UUID
    purchase_order_id: UUID
    date: datetime
    notes: str | None
    items: tuple[ReceptionItemInfo, ...]

    @property
    def total_quantity(self) -> int:
        return sum(i.quantity_received for i in self.items)


@dataclass(frozen=True)
class PurchaseOrderInfo:
    id: UUID
    number: str
    supplier: str
    order_date: datetime
    expected_date: datetime | None
    status: PurchaseOrderStatus
    total_cost: Decimal
    items: tuple[PurchaseOrderItemInfo, ...]
    receptions: tuple[ReceptionInfo, ...]
    version: int


@dataclass(frozen=True)
class ReceiveResult:
    """Outcome of one ``receive`` call."""
    reception: ReceptionInfo
    status: PurchaseOrderStatus
    purchase_order: PurchaseOrderInfo
    clamped_items: tuple[UUID, ...] = ()
