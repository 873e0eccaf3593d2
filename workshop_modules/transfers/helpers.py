"""Pure helpers for transfer validation and destination matching."""

from __future__ import annotations

from typing import Sequence
from uuid import UUID

from workshop_kernel.exceptions import InvalidTransferError
from workshop_modules.transfers.models import TransferLine


def validate_transfer_request(
    from_location_id: UUID,
    to_location_id: UUID,
    items: Sequence[TransferLine],
) -> list[TransferLine]:
    """
    Check the request shape and merge repeated source records.

    Raises:
        InvalidTransferError: same source and destination, or no items.
    """
    if from_location_id == to_location_id:
        raise InvalidTransferError("source and destination locations must differ")
    if not items:
        raise InvalidTransferError("at least one item is required")

    merged: dict[UUID, TransferLine] = {}
    for line in items:
        existing = merged.get(line.inventory_item_id)
        if existing is None:
            merged[line.inventory_item_id] = line
        else:
            merged[line.inventory_item_id] = TransferLine(
                inventory_item_id=line.inventory_item_id,
                quantity=existing.quantity + line.quantity,
                name=existing.name or line.name,
            )
    return list(merged.values())


def match_key(sku: str | None, name: str) -> tuple[str, str]:
    """
    Destination matching key: SKU when the item has one, else exact name.

    >>> match_key("TH-01", "Thread")
    ('sku', 'TH-01')
    >>> match_key(None, "Thread")
    ('name', 'Thread')
    """
    if sku:
        return ("sku", sku)
    return ("name", name)
