"""
Pure domain layer.

Frozen DTOs, the injectable clock and workflow primitives.  Nothing here
touches the ORM or the database.
"""

from workshop_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SequentialClock,
    SystemClock,
)
from workshop_kernel.domain.dtos import InventoryRecordInfo
from workshop_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Clock",
    "DeterministicClock",
    "SequentialClock",
    "SystemClock",
    "InventoryRecordInfo",
    "Guard",
    "Transition",
    "Workflow",
]
