"""
Receiving Module (``workshop_modules.receiving``).

Purchase-order creation and supplier receipts.  ``ReceivingEngine.receive``
credits inventory, advances each item's received quantity, appends an
immutable reception and re-derives the order status in one transaction.
"""

from workshop_modules.receiving.helpers import (
    derive_purchase_order_status,
    normalize_receipt_lines,
    remaining_quantities,
)
from workshop_modules.receiving.models import (
    OverReceiptPolicy,
    PurchaseOrderInfo,
    PurchaseOrderItemInfo,
    PurchaseOrderLine,
    PurchaseOrderStatus,
    ReceiptLine,
    ReceiveResult,
    ReceptionInfo,
    ReceptionItemInfo,
)
from workshop_modules.receiving.service import ReceivingEngine
from workshop_modules.receiving.workflows import PURCHASE_ORDER_WORKFLOW

__all__ = [
    "OverReceiptPolicy",
    "PURCHASE_ORDER_WORKFLOW",
    "PurchaseOrderInfo",
    "PurchaseOrderItemInfo",
    "PurchaseOrderLine",
    "PurchaseOrderStatus",
    "ReceiptLine",
    "ReceiveResult",
    "ReceivingEngine",
    "ReceptionInfo",
    "ReceptionItemInfo",
    "derive_purchase_order_status",
    "normalize_receipt_lines",
    "remaining_quantities",
]
