"""
Transfer Domain Models (``workshop_modules.transfers.models``).

Frozen value objects for moving stock between two locations.  While a
transfer is PENDING its quantities are in flight: already debited from the
source, not yet credited to the destination.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from workshop_kernel.exceptions import InvalidTransferError


class TransferStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class TransferLine:
    """One requested line: move ``quantity`` units of a source record."""
    inventory_item_id: UUID
    quantity: int
    name: str = ""

    def __post_init__(self):
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) \
                or self.quantity <= 0:
            raise InvalidTransferError(
                f"quantity for {self.name or self.inventory_item_id} must be a "
                f"positive whole number, got {self.quantity!r}"
            )


@dataclass(frozen=True)
class TransferItemInfo:
    """A transferred line plus the descriptive snapshot taken at creation."""
    inventory_item_id: UUID
    name: str
    quantity: int
    sku: str | None
    category: str | None
    supplier: str | None
    cost_price: Decimal
    retail_price: Decimal
    reorder_level: int


@dataclass(frozen=True)
class TransferOrderInfo:
    id: UUID
    number: str
    from_location_id: UUID
    to_location_id: UUID
    status: TransferStatus
    items: tuple[TransferItemInfo, ...]
    notes: str | None
    created_at: datetime
    completed_at: datetime | None
    version: int

    @property
    def total_quantity(self) -> int:
        return sum(i.quantity for i in self.items)


@dataclass(frozen=True)
class DestinationPlan:
    """Planning-phase guess of where one item lands (None = create new)."""
    inventory_item_id: UUID
    destination_id: UUID | None


@dataclass(frozen=True)
class TransferResult:
    """
    Outcome of ``complete`` or ``cancel``.

    ``destinations`` maps each source record id to the destination record
    credited or created (complete only).  ``created_records`` lists the
    destination records that did not exist before.  ``untracked_items``
    lists source records that were gone when a cancel tried to return stock.
    """
    transfer: TransferOrderInfo
    destinations: dict[UUID, UUID] = field(default_factory=dict)
    created_records: tuple[UUID, ...] = ()
    untracked_items: tuple[UUID, ...] = ()
