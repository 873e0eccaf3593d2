"""
Receiving Pure Functions (``workshop_modules.receiving.helpers``).

Responsibility
--------------
Stateless rules for purchase-order receiving: status derivation from item
state, remaining quantities, and normalisation of receipt lines.

Architecture
------------
Layer: **Modules** -- pure helper functions.  No session, no clock.  Items
are duck-typed (anything with ``quantity`` and ``received_quantity``) so the
same rule runs on ORM rows inside a transaction and on DTOs in tests.

Invariants
----------
- ``derive_purchase_order_status`` has no hidden state: calling it twice
  on the same items gives the same answer.
"""

from __future__ import annotations

from typing import Iterable, Protocol, Sequence
from uuid import UUID

from workshop_modules.receiving.models import (
    PurchaseOrderInfo,
    PurchaseOrderStatus,
    ReceiptLine,
)


class _ReceivableItem(Protocol):
    quantity: int
    received_quantity: int


def derive_purchase_order_status(
    items: Iterable[_ReceivableItem],
    current_status: PurchaseOrderStatus = PurchaseOrderStatus.ORDERED,
) -> PurchaseOrderStatus:
    """
    Status implied by the items' received vs ordered quantities.

    - every item complete -> RECEIVED
    - anything received   -> PARTIALLY_RECEIVED
    - nothing received    -> ``current_status`` unchanged
    """
    items = list(items)
    if items and all(i.received_quantity >= i.quantity for i in items):
        return PurchaseOrderStatus.RECEIVED
    if any(i.received_quantity > 0 for i in items):
        return PurchaseOrderStatus.PARTIALLY_RECEIVED
    return current_status


def remaining_quantities(po: PurchaseOrderInfo) -> dict[UUID, int]:
    """Quantity still expected per inventory item (what a receiving form pre-fills)."""
    return {
        item.inventory_item_id: max(item.quantity - item.received_quantity, 0)
        for item in po.items
    }


def normalize_receipt_lines(receipts: Sequence[ReceiptLine]) -> list[ReceiptLine]:
    """
    Drop zero lines and merge repeated items, keeping first-seen order.

    Returns an empty list when nothing is left to receive.
    """
    merged: dict[UUID, ReceiptLine] = {}
    for line in receipts:
        if line.quantity_received == 0:
            continue
        existing = merged.get(line.inventory_item_id)
        if existing is None:
            merged[line.inventory_item_id] = line
        else:
            merged[line.inventory_item_id] = ReceiptLine(
                inventory_item_id=line.inventory_item_id,
                quantity_received=existing.quantity_received + line.quantity_received,
                name=existing.name or line.name,
            )
    return list(merged.values())
