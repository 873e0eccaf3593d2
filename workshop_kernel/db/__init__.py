"""Database layer - engine, base classes, types and the transaction runner."""

from workshop_kernel.db.base import UUID, Base, TrackedBase, UUIDString, UTCDateTime
from workshop_kernel.db.engine import create_tables, make_engine
from workshop_kernel.db.transaction import TransactionRunner, is_conflict
from workshop_kernel.db.types import Money, Quantity, Rate, round_money, to_decimal

__all__ = [
    "make_engine",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UTCDateTime",
    "UUID",
    "Money",
    "Quantity",
    "Rate",
    "round_money",
    "to_decimal",
    "TransactionRunner",
    "is_conflict",
]
