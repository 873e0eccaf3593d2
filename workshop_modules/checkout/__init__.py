"""
Checkout Module (``workshop_modules.checkout``).

Point-of-sale checkout: stock debits, consolidated repair and per-line
orders, one invoice per cart, and later payments against that invoice.
The order/invoice/back-link sequence is a saga; ``relink_orders`` resumes
it after a partial failure.
"""

from workshop_modules.checkout.config import CheckoutConfig
from workshop_modules.checkout.helpers import (
    compute_invoice_totals,
    derive_invoice_status,
    is_overdue,
)
from workshop_modules.checkout.models import (
    CartLine,
    CartLineKind,
    CheckoutResult,
    InvoiceInfo,
    InvoiceItemInfo,
    InvoiceStatus,
    MaterialRef,
    OrderInfo,
    OrderItemInfo,
    OrderStatus,
    OrderType,
    RelinkResult,
)
from workshop_modules.checkout.service import CheckoutEngine
from workshop_modules.checkout.workflows import INVOICE_WORKFLOW

__all__ = [
    "CartLine",
    "CartLineKind",
    "CheckoutConfig",
    "CheckoutEngine",
    "CheckoutResult",
    "INVOICE_WORKFLOW",
    "InvoiceInfo",
    "InvoiceItemInfo",
    "InvoiceStatus",
    "MaterialRef",
    "OrderInfo",
    "OrderItemInfo",
    "OrderStatus",
    "OrderType",
    "RelinkResult",
    "compute_invoice_totals",
    "derive_invoice_status",
    "is_overdue",
]
