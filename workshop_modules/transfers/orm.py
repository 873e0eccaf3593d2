"""
Module: workshop_modules.transfers.orm
Responsibility: SQLAlchemy persistence for transfer orders and their items.

Architecture position: Modules > Transfers > ORM.  Items reference the source
    InventoryRecord by id with no foreign key (the source may be deleted
    while the transfer is pending) and carry a descriptive snapshot.

Invariants enforced:
    - TransferOrder is versioned: two concurrent complete/cancel calls on the
      same order cannot both commit.
    - Completed and Cancelled orders (and their items) are immutable; see
      workshop_kernel.db.immutability.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workshop_kernel.db.base import Base, TrackedBase
from workshop_kernel.db.types import Money
from workshop_modules.transfers.models import (
    TransferItemInfo,
    TransferOrderInfo,
    TransferStatus,
)


class TransferOrderModel(TrackedBase):
    __tablename__ = "transfer_orders"

    __table_args__ = (
        CheckConstraint(
            "from_location_id <> to_location_id",
            name="ck_transfer_distinct_locations",
        ),
        Index("idx_transfer_from", "from_location_id"),
        Index("idx_transfer_to", "to_location_id"),
        Index("idx_transfer_status", "status"),
    )

    number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    from_location_id: Mapped[UUID] = mapped_column(nullable=False)
    to_location_id: Mapped[UUID] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    items: Mapped[list["TransferOrderItemModel"]] = relationship(
        back_populates="transfer_order",
        order_by="TransferOrderItemModel.position",
        cascade="save-update, merge",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self) -> TransferOrderInfo:
        return TransferOrderInfo(
            id=self.id,
            number=self.number,
            from_location_id=self.from_location_id,
            to_location_id=self.to_location_id,
            status=TransferStatus(self.status),
            items=tuple(i.to_dto() for i in self.items),
            notes=self.notes,
            created_at=self.created_at,
            completed_at=self.completed_at,
            version=self.version,
        )

    def __repr__(self) -> str:
        return f"<TransferOrderModel {self.number} {self.status}>"


class TransferOrderItemModel(Base):
    __tablename__ = "transfer_order_items"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_transfer_item_quantity_positive"),
        Index("idx_transfer_item_order", "transfer_order_id"),
    )

    transfer_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("transfer_orders.id"), nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    inventory_item_id: Mapped[UUID] = mapped_column(nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    # Snapshot of the source record at creation
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[str | None] = mapped_column(String(64), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    supplier: Mapped[str | None] = mapped_column(String(255), nullable=True)
    cost_price: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0"))
    retail_price: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0"))
    reorder_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    transfer_order: Mapped[TransferOrderModel] = relationship(back_populates="items")

    def to_dto(self) -> TransferItemInfo:
        return TransferItemInfo(
            inventory_item_id=self.inventory_item_id,
            name=self.name,
            quantity=self.quantity,
            sku=self.sku,
            category=self.category,
            supplier=self.supplier,
            cost_price=self.cost_price,
            retail_price=self.retail_price,
            reorder_level=self.reorder_level,
        )
