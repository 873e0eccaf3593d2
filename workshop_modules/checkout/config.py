"""
Checkout Configuration Schema.

Shop-level settings the checkout engine reads on every call.  Values come
from ``workshop_config`` at runtime; the defaults below match a small
walk-in workshop.
"""

from dataclasses import dataclass
from decimal import Decimal

from workshop_kernel.db.types import to_decimal


@dataclass(frozen=True)
class CheckoutConfig:
    """
    Configuration schema for the checkout engine.

        config = CheckoutConfig(default_tax_rate=Decimal("0.2"), prevalidate_cart=True)
    """

    default_tax_rate: Decimal = Decimal("0.08")

    # False: each cart line debits in its own transaction
    prevalidate_cart: bool = False

    walk_in_customer_id: str = "walk-in"

    # Days from the order date
    repair_delivery_days: int = 7
    order_delivery_days: int = 14
    invoice_due_days: int = 30

    def __post_init__(self):
        rate = to_decimal(self.default_tax_rate)
        if not Decimal("0") <= rate <= Decimal("1"):
            raise ValueError(f"default_tax_rate must be within [0, 1], got {rate}")
        object.__setattr__(self, "default_tax_rate", rate)

        if not self.walk_in_customer_id:
            raise ValueError("walk_in_customer_id cannot be empty")

        for name in ("repair_delivery_days", "order_delivery_days", "invoice_due_days"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"{name} must be a non-negative integer, got {value!r}")
