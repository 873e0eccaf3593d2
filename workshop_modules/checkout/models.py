"""
Checkout Domain Models (``workshop_modules.checkout.models``).

Responsibility
--------------
Frozen value objects for the point-of-sale flow: cart lines going in,
orders and invoices coming out.

Architecture
------------
Layer: **Modules** -- pure data structures, no I/O.  ``CartLine`` validates
its own shape on construction so a malformed cart is rejected before any
transaction opens.

Invariants
----------
- Prices and invoice amounts are ``Decimal``; quantities are whole units.
- ``InvoiceInfo.amount_due`` is always ``total - deposit``; it is derived,
  never stored.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from workshop_kernel.db.types import to_decimal
from workshop_kernel.exceptions import InvalidCheckoutError, InvalidQuantityError


class CartLineKind(str, Enum):
    PRODUCT = "product"
    REPAIR = "repair"
    STITCH_ORDER = "stitch_order"


class OrderType(str, Enum):
    """How an order is fulfilled."""
    ORDER = "order"  # custom stitch work
    REPAIR = "repair"
    SHIPPED = "shipped"  # product sold over the counter


class OrderStatus(str, Enum):
    PLACED = "placed"
    COMPLETED = "completed"


class InvoiceStatus(str, Enum):
    PENDING = "pending"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"


@dataclass(frozen=True)
class MaterialRef:
    """An inventory record consumed by a repair or stitch line."""
    id: UUID
    name: str


@dataclass(frozen=True)
class CartLine:
    """
    One line of a point-of-sale cart.

    Product lines sell ``quantity`` units of ``product_id``; a product with
    no ``product_id`` (or no record behind it) sells without touching stock.
    Repair and stitch lines consume one unit of every attached material per
    line unit.
    """
    kind: CartLineKind
    name: str
    price: Decimal
    quantity: int = 1
    product_id: UUID | None = None
    materials: tuple[MaterialRef, ...] = ()
    details: str | None = None
    line_id: UUID = field(default_factory=uuid4)

    def __post_init__(self):
        try:
            kind = CartLineKind(self.kind)
        except ValueError as exc:
            raise InvalidCheckoutError(f"unknown line kind {self.kind!r}") from exc
        object.__setattr__(self, "kind", kind)

        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) \
                or self.quantity < 1:
            raise InvalidQuantityError(self.name, self.quantity)

        try:
            price = to_decimal(self.price)
        except ValueError as exc:
            raise InvalidCheckoutError(
                f"price for {self.name} is not a number: {self.price!r}"
            ) from exc
        if price < 0:
            raise InvalidCheckoutError(f"price for {self.name} cannot be negative")
        object.__setattr__(self, "price", price)

        object.__setattr__(self, "materials", tuple(self.materials))

    @property
    def requirements(self) -> tuple[tuple[UUID, int], ...]:
        """``(inventory_record_id, units)`` this line takes from stock."""
        if self.kind is CartLineKind.PRODUCT:
            if self.product_id is None:
                return ()
            return ((self.product_id, self.quantity),)
        return tuple((m.id, self.quantity) for m in self.materials)


@dataclass(frozen=True)
class OrderItemInfo:
    line_id: UUID
    kind: CartLineKind
    name: str
    price: Decimal
    quantity: int
    product_id: UUID | None
    material_ids: tuple[UUID, ...]
    details: str | None


@dataclass(frozen=True)
class OrderInfo:
    id: UUID
    number: str
    customer_id: str
    type: OrderType
    status: OrderStatus
    amount: Decimal
    material_cost: Decimal
    materials: str
    material_ids: tuple[UUID, ...]
    details: str | None
    order_date: datetime
    delivery_date: datetime
    invoice_id: UUID | None
    items: tuple[OrderItemInfo, ...]
    version: int


@dataclass(frozen=True)
class InvoiceItemInfo:
    line_id: UUID
    order_id: UUID | None
    name: str
    quantity: int
    price: Decimal
    total: Decimal


@dataclass(frozen=True)
class InvoiceInfo:
    id: UUID
    number: str
    customer_id: str
    date: datetime
    due_date: datetime
    status: InvoiceStatus
    subtotal: Decimal
    tax_rate: Decimal
    tax: Decimal
    total: Decimal
    deposit: Decimal
    payment_method: str | None
    items: tuple[InvoiceItemInfo, ...]
    version: int

    @property
    def amount_due(self) -> Decimal:
        return self.total - self.deposit

    @property
    def order_ids(self) -> tuple[UUID, ...]:
        """Distinct orders referenced by the items, in item order."""
        seen: dict[UUID, None] = {}
        for item in self.items:
            if item.order_id is not None:
                seen.setdefault(item.order_id, None)
        return tuple(seen)


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    tax: Decimal
    total: Decimal


@dataclass(frozen=True)
class CheckoutResult:
    """
    Outcome of ``checkout``.

    ``debits`` lists ``(inventory_record_id, units)`` taken from stock.
    Paying an existing invoice returns no orders and no debits.
    """
    invoice: InvoiceInfo
    orders: tuple[OrderInfo, ...] = ()
    debits: tuple[tuple[UUID, int], ...] = ()


@dataclass(frozen=True)
class RelinkResult:
    """What one pass of ``relink_orders`` did."""
    invoice_id: UUID
    linked: tuple[UUID, ...] = ()
    already_linked: tuple[UUID, ...] = ()
    conflicting: tuple[UUID, ...] = ()
