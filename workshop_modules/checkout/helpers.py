"""
Checkout Pure Functions (``workshop_modules.checkout.helpers``).

Responsibility
--------------
Invoice arithmetic, invoice status derivation, cart validation and the
split of a cart into one consolidated repair order plus one order per
remaining line.

Architecture
------------
Layer: **Modules** -- pure helper functions.  No session, no clock.  The
engine calls these both to pre-validate a cart and inside its transaction
bodies, so the same rule applies on every retry.

Invariants
----------
- Every monetary result is rounded with ``round_money`` (2 places, half-up).
- ``derive_invoice_status`` is a pure function of ``(total, deposit)``.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Sequence
from uuid import UUID

from workshop_kernel.db.types import round_money, to_decimal
from workshop_kernel.exceptions import EmptyCartError, InvalidCheckoutError
from workshop_modules.checkout.models import (
    CartLine,
    CartLineKind,
    InvoiceInfo,
    InvoiceStatus,
    InvoiceTotals,
)

_ZERO = Decimal("0")

REPAIR_DETAIL_SEPARATOR = "\n---\n"


def validate_cart(cart: Sequence[CartLine] | None) -> list[CartLine]:
    """
    Reject an empty cart or repeated line ids.

    Raises:
        EmptyCartError: no lines.
        InvalidCheckoutError: two lines share a ``line_id``.
    """
    if not cart:
        raise EmptyCartError()
    lines = list(cart)
    ids = [line.line_id for line in lines]
    if len(set(ids)) != len(ids):
        raise InvalidCheckoutError("cart lines must have distinct line ids")
    return lines


def validate_tax_rate(rate: object) -> Decimal:
    try:
        value = to_decimal(rate)
    except ValueError as exc:
        raise InvalidCheckoutError(f"tax rate is not a number: {rate!r}") from exc
    if not _ZERO <= value <= Decimal("1"):
        raise InvalidCheckoutError(f"tax rate must be within [0, 1], got {value}")
    return value


def validate_amount(amount: object, *, allow_zero: bool = True) -> Decimal:
    try:
        value = to_decimal(amount)
    except ValueError as exc:
        raise InvalidCheckoutError(f"amount is not a number: {amount!r}") from exc
    if value < 0 or (not allow_zero and value == 0):
        qualifier = "negative" if allow_zero else "zero or negative"
        raise InvalidCheckoutError(f"amount cannot be {qualifier}: {value}")
    return value


def line_total(line: CartLine) -> Decimal:
    return round_money(line.price * line.quantity)


def compute_invoice_totals(lines: Iterable[CartLine], tax_rate: Decimal) -> InvoiceTotals:
    """
    Subtotal, tax and total for a cart.

    The subtotal is the sum of the rounded line totals so that the invoice
    items always add up to it.

    >>> from uuid import uuid4
    >>> line = CartLine(CartLineKind.PRODUCT, "Thread", Decimal("10.00"), 3, uuid4())
    >>> compute_invoice_totals([line], Decimal("0.08"))
    InvoiceTotals(subtotal=Decimal('30.00'), tax=Decimal('2.40'), total=Decimal('32.40'))
    """
    subtotal = round_money(sum((line_total(line) for line in lines), _ZERO))
    tax = round_money(subtotal * tax_rate)
    return InvoiceTotals(subtotal=subtotal, tax=tax, total=subtotal + tax)


def derive_invoice_status(total: Decimal, deposit: Decimal) -> InvoiceStatus:
    """
    Paid when nothing is due, partially paid when something was paid,
    pending otherwise.
    """
    if total - deposit <= 0:
        return InvoiceStatus.PAID
    if deposit > 0:
        return InvoiceStatus.PARTIALLY_PAID
    return InvoiceStatus.PENDING


def initial_deposit(total: Decimal, amount_paid: Decimal) -> Decimal:
    """Amount taken at checkout; anything over the total is not kept."""
    return round_money(min(amount_paid, total))


def apply_payment(total: Decimal, deposit: Decimal, amount_paid: Decimal) -> tuple[Decimal, Decimal]:
    """
    Credit a later payment against an invoice.

    Returns ``(new_deposit, credited)``.  ``credited`` is capped at the
    amount due and never negative.
    """
    due = max(total - deposit, _ZERO)
    credited = round_money(min(amount_paid, due))
    return deposit + credited, credited


def is_overdue(invoice: InvoiceInfo, now: datetime) -> bool:
    return invoice.status is not InvoiceStatus.PAID and now > invoice.due_date


def partition_cart(lines: Sequence[CartLine]) -> tuple[list[CartLine], list[CartLine]]:
    """Split into ``(repair_lines, individual_lines)``, keeping cart order."""
    repairs = [line for line in lines if line.kind is CartLineKind.REPAIR]
    others = [line for line in lines if line.kind is not CartLineKind.REPAIR]
    return repairs, others


def aggregate_requirements(lines: Iterable[CartLine]) -> dict[UUID, int]:
    """Total units needed per inventory record, in first-seen order."""
    totals: dict[UUID, int] = {}
    for line in lines:
        for record_id, units in line.requirements:
            totals[record_id] = totals.get(record_id, 0) + units
    return totals


def unique_materials(lines: Iterable[CartLine]) -> tuple[list[UUID], list[str]]:
    """Distinct material ids and names across ``lines``, first-seen order."""
    ids: list[UUID] = []
    names: list[str] = []
    for line in lines:
        for material in line.materials:
            if material.id not in ids:
                ids.append(material.id)
                names.append(material.name)
    return ids, names


def repair_details(lines: Iterable[CartLine]) -> str | None:
    """Damage notes for a consolidated repair order, one block per line."""
    blocks = [f"{line.name}: {line.details}" for line in lines if line.details]
    return REPAIR_DETAIL_SEPARATOR.join(blocks) or None
