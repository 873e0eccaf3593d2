"""
WorkshopConfig schema.

The human-authored settings of one deployment: database, transaction
retry budget, receiving policy, checkout defaults and log level.  YAML is
parsed into these frozen dataclasses by the loader; every section checks
its own values in ``__post_init__`` and raises ``ValueError`` with the
offending key.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

VALID_OVER_RECEIPT_POLICIES = {"reject", "clamp"}
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _non_negative_int(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{name} must be a non-negative integer, got {value!r}")


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///workshop.db"
    echo: bool = False

    def __post_init__(self):
        if not self.url:
            raise ValueError("database.url cannot be empty")


@dataclass(frozen=True)
class TransactionSettings:
    """Retry budget of the optimistic transaction runner."""

    max_attempts: int = 5
    backoff_seconds: float = 0.05

    def __post_init__(self):
        if isinstance(self.max_attempts, bool) or not isinstance(self.max_attempts, int) \
                or self.max_attempts < 1:
            raise ValueError(
                f"transactions.max_attempts must be >= 1, got {self.max_attempts!r}"
            )
        if isinstance(self.backoff_seconds, bool) \
                or not isinstance(self.backoff_seconds, (int, float)) \
                or self.backoff_seconds < 0:
            raise ValueError(
                f"transactions.backoff_seconds must be >= 0, got {self.backoff_seconds!r}"
            )


@dataclass(frozen=True)
class ReceivingSettings:
    over_receipt_policy: str = "reject"  # "reject" or "clamp"

    def __post_init__(self):
        if self.over_receipt_policy not in VALID_OVER_RECEIPT_POLICIES:
            raise ValueError(
                f"receiving.over_receipt_policy must be one of "
                f"{sorted(VALID_OVER_RECEIPT_POLICIES)}, got {self.over_receipt_policy!r}"
            )


@dataclass(frozen=True)
class CheckoutSettings:
    default_tax_rate: Decimal = Decimal("0.08")
    prevalidate_cart: bool = False
    walk_in_customer_id: str = "walk-in"
    repair_delivery_days: int = 7
    order_delivery_days: int = 14
    invoice_due_days: int = 30

    def __post_init__(self):
        try:
            rate = Decimal(str(self.default_tax_rate))
        except InvalidOperation as exc:
            raise ValueError(
                f"checkout.default_tax_rate is not a number: {self.default_tax_rate!r}"
            ) from exc
        if not Decimal("0") <= rate <= Decimal("1"):
            raise ValueError(f"checkout.default_tax_rate must be within [0, 1], got {rate}")
        object.__setattr__(self, "default_tax_rate", rate)

        if not isinstance(self.prevalidate_cart, bool):
            raise ValueError(
                f"checkout.prevalidate_cart must be true or false, got {self.prevalidate_cart!r}"
            )
        if not self.walk_in_customer_id:
            raise ValueError("checkout.walk_in_customer_id cannot be empty")
        _non_negative_int("checkout.repair_delivery_days", self.repair_delivery_days)
        _non_negative_int("checkout.order_delivery_days", self.order_delivery_days)
        _non_negative_int("checkout.invoice_due_days", self.invoice_due_days)


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"

    def __post_init__(self):
        level = str(self.level).upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"logging.level must be one of {sorted(VALID_LOG_LEVELS)}, got {self.level!r}"
            )
        object.__setattr__(self, "level", level)

    @property
    def numeric_level(self) -> int:
        return logging.getLevelName(self.level)


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WorkshopConfig:
    """Complete runtime configuration."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    transactions: TransactionSettings = field(default_factory=TransactionSettings)
    receiving: ReceivingSettings = field(default_factory=ReceivingSettings)
    checkout: CheckoutSettings = field(default_factory=CheckoutSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    source: str | None = None  # file the values came from
