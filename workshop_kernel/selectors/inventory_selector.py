"""Read-side queries over InventoryRecord."""

from uuid import UUID

from sqlalchemy import select

from workshop_kernel.domain.dtos import InventoryRecordInfo
from workshop_kernel.models.inventory import InventoryRecord
from workshop_kernel.selectors.base import BaseSelector


class InventorySelector(BaseSelector[InventoryRecord]):
    """
    Lookups used by the engines' planning phases and by callers.

    ``find_by_sku`` / ``find_by_name`` are the destination-matching keys
    used by transfer completion.
    """

    def get(self, record_id: UUID) -> InventoryRecordInfo | None:
        record = self.session.get(InventoryRecord, record_id)
        return record.to_dto() if record is not None else None

    def find_by_sku(self, location_id: UUID, sku: str) -> InventoryRecordInfo | None:
        record = self.session.execute(
            select(InventoryRecord).where(
                InventoryRecord.location_id == location_id,
                InventoryRecord.sku == sku,
            )
        ).scalar_one_or_none()
        return record.to_dto() if record is not None else None

    def find_by_name(self, location_id: UUID, name: str) -> InventoryRecordInfo | None:
        """First record at ``location_id`` with exactly this name (oldest wins)."""
        record = self.session.execute(
            select(InventoryRecord)
            .where(
                InventoryRecord.location_id == location_id,
                InventoryRecord.name == name,
            )
            .order_by(InventoryRecord.created_at, InventoryRecord.id)
            .limit(1)
        ).scalar_one_or_none()
        return record.to_dto() if record is not None else None

    def list_for_location(self, location_id: UUID) -> list[InventoryRecordInfo]:
        records = self.session.execute(
            select(InventoryRecord)
            .where(InventoryRecord.location_id == location_id)
            .order_by(InventoryRecord.name, InventoryRecord.id)
        ).scalars()
        return [r.to_dto() for r in records]

    def low_stock(self, location_id: UUID) -> list[InventoryRecordInfo]:
        records = self.session.execute(
            select(InventoryRecord)
            .where(
                InventoryRecord.location_id == location_id,
                InventoryRecord.stock <= InventoryRecord.reorder_level,
            )
            .order_by(InventoryRecord.name, InventoryRecord.id)
        ).scalars()
        return [r.to_dto() for r in records]
