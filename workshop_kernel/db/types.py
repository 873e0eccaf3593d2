"""
Module: workshop_kernel.db.types
Responsibility: Annotated column aliases and the money rounding helpers shared
    by every model and service.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, selectors/ and the operations modules.

Invariants enforced:
    - No floats for money.  Prices, costs and invoice amounts are Decimal.
    - round_money() is the only rounding function for invoice arithmetic
      (two places, ROUND_HALF_UP).
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import Integer, Numeric, String

# Stored price or cost: 38 digits, 9 places
Money = Annotated[Decimal, Numeric(38, 9)]

# Tax rate fraction (0.08 == 8%)
Rate = Annotated[Decimal, Numeric(12, 6)]

# Whole-unit stock or line quantity
Quantity = Annotated[int, Integer]

# Short identifier strings (SKU, status, location id)
ShortCode = Annotated[str, String(64)]

# Human readable names
Name = Annotated[str, String(255)]

# Free text (notes, custom details)
LongText = Annotated[str, String(4000)]


MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


def to_decimal(value: object) -> Decimal:
    """
    Coerce ints, strings and Decimals to Decimal.

    Floats go through ``str()`` so that ``19.99`` becomes ``Decimal("19.99")``
    rather than its binary expansion.

    Raises:
        ValueError: If the value cannot be represented as a Decimal.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary value: {value!r}")
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Not a monetary value: {value!r}") from exc


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round a monetary value to ``decimal_places`` (half-up by default)."""
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return to_decimal(value).quantize(Decimal(quantize_str), rounding=rounding)
