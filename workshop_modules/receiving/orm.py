"""
Module: workshop_modules.receiving.orm
Responsibility: SQLAlchemy persistence for purchase orders, their items, and
    the append-only reception log.

Architecture position: Modules > Receiving > ORM.  Inherits from the kernel's
    declarative bases.  ``inventory_item_id`` references InventoryRecord by id
    with NO foreign key: inventory records are managed outside the engines
    and may be removed while old purchase orders remain.

Invariants enforced:
    - PurchaseOrder and PurchaseOrderItem are versioned (optimistic locking).
    - 0 <= received_quantity <= quantity (ck_po_item_received_range).
    - Reception / ReceptionItem rows are never updated or deleted; the
      listeners in workshop_kernel.db.immutability reject any attempt.

Failure modes:
    - StaleDataError when two receives race on the same PO (retried).
    - IntegrityError if a received quantity would leave its allowed range.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workshop_kernel.db.base import Base, TrackedBase
from workshop_kernel.db.types import Money
from workshop_modules.receiving.models import (
    PurchaseOrderInfo,
    PurchaseOrderItemInfo,
    PurchaseOrderStatus,
    ReceptionInfo,
    ReceptionItemInfo,
)


class PurchaseOrderModel(TrackedBase):
    """Purchase order header; owns its items and receptions."""

    __tablename__ = "purchase_orders"

    __table_args__ = (
        Index("idx_po_status", "status"),
        Index("idx_po_supplier", "supplier"),
    )

    number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    supplier: Mapped[str] = mapped_column(String(255), nullable=False)
    order_date: Mapped[datetime] = mapped_column(nullable=False)
    expected_date: Mapped[datetime | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    total_cost: Mapped[Money] = mapped_column(nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    items: Mapped[list["PurchaseOrderItemModel"]] = relationship(
        back_populates="purchase_order",
        order_by="PurchaseOrderItemModel.position",
        cascade="save-update, merge",
        lazy="selectin",
    )
    receptions: Mapped[list["ReceptionModel"]] = relationship(
        back_populates="purchase_order",
        order_by="ReceptionModel.sequence",
        cascade="save-update, merge",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self) -> PurchaseOrderInfo:
        return PurchaseOrderInfo(
            id=self.id,
            number=self.number,
            supplier=self.supplier,
            order_date=self.order_date,
            expected_date=self.expected_date,
            status=PurchaseOrderStatus(self.status),
            total_cost=self.total_cost,
            items=tuple(i.to_dto() for i in self.items),
            receptions=tuple(r.to_dto() for r in self.receptions),
            version=self.version,
        )

    def __repr__(self) -> str:
        return f"<PurchaseOrderModel {self.number} {self.status}>"


class PurchaseOrderItemModel(Base):
    __tablename__ = "purchase_order_items"

    __table_args__ = (
        CheckConstraint(
            "received_quantity >= 0 AND received_quantity <= quantity",
            name="ck_po_item_received_range",
        ),
        CheckConstraint("quantity > 0", name="ck_po_item_quantity_positive"),
        Index("idx_po_item_po", "purchase_order_id"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    inventory_item_id: Mapped[UUID] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    cost: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0"))
    received_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    purchase_order: Mapped[PurchaseOrderModel] = relationship(back_populates="items")

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self) -> PurchaseOrderItemInfo:
        return PurchaseOrderItemInfo(
            id=self.id,
            inventory_item_id=self.inventory_item_id,
            name=self.name,
            quantity=self.quantity,
            cost=self.cost,
            received_quantity=self.received_quantity,
        )


class ReceptionModel(Base):
    """One goods-received event.  Insert-only."""

    __tablename__ = "receptions"

    __table_args__ = (
        UniqueConstraint("purchase_order_id", "sequence", name="uq_reception_po_sequence"),
        Index("idx_reception_po", "purchase_order_id"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("purchase_orders.id"), nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[datetime] = mapped_column(nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    purchase_order: Mapped[PurchaseOrderModel] = relationship(back_populates="receptions")
    items: Mapped[list["ReceptionItemModel"]] = relationship(
        back_populates="reception",
        order_by="ReceptionItemModel.position",
        cascade="save-update, merge",
        lazy="selectin",
    )

    def to_dto(self) -> ReceptionInfo:
        return ReceptionInfo(
            id=self.id,
            purchase_order_id=self.purchase_order_id,
            date=self.date,
            notes=self.notes,
            items=tuple(i.to_dto() for i in self.items),
        )


class ReceptionItemModel(Base):
    __tablename__ = "reception_items"

    __table_args__ = (
        CheckConstraint("quantity_received > 0", name="ck_reception_item_positive"),
        Index("idx_reception_item_reception", "reception_id"),
    )

    reception_id: Mapped[UUID] = mapped_column(
        ForeignKey("receptions.id"), nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    inventory_item_id: Mapped[UUID] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity_received: Mapped[int] = mapped_column(Integer, nullable=False)

    reception: Mapped[ReceptionModel] = relationship(back_populates="items")

    def to_dto(self) -> ReceptionItemInfo:
        return ReceptionItemInfo(
            inventory_item_id=self.inventory_item_id,
            name=self.name,
            quantity_received=self.quantity_received,
        )
