"""
Module: workshop_modules.checkout.orm
Responsibility: SQLAlchemy persistence for orders, invoices and their items.

Architecture position: Modules > Checkout > ORM.  Orders point at their
    invoice through a nullable ``invoice_id``; invoice items point at the
    order they were fulfilled by.  Products and materials are referenced by
    inventory record id with no foreign key.

Invariants enforced:
    - Order and Invoice are versioned (optimistic locking).
    - ``amount_due`` is a hybrid attribute (``total - deposit``); it has no
      column and is usable in queries.
    - 0 <= deposit <= total (ck_invoice_deposit_range).

Failure modes:
    - StaleDataError when two payments race on one invoice (retried).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, Integer, String, Text
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workshop_kernel.db.base import Base, TrackedBase
from workshop_kernel.db.types import Money, Rate
from workshop_modules.checkout.models import (
    CartLineKind,
    InvoiceInfo,
    InvoiceItemInfo,
    InvoiceStatus,
    OrderInfo,
    OrderItemInfo,
    OrderStatus,
    OrderType,
)


def _uuids(values: list[str] | None) -> tuple[UUID, ...]:
    return tuple(UUID(v) for v in values or ())


class OrderModel(TrackedBase):
    """A repair, custom stitch job or counter sale created at checkout."""

    __tablename__ = "orders"

    __table_args__ = (
        Index("idx_order_customer", "customer_id"),
        Index("idx_order_invoice", "invoice_id"),
    )

    number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[Money] = mapped_column(nullable=False)
    material_cost: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0"))
    materials: Mapped[str] = mapped_column(Text, nullable=False, default="")
    material_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    order_date: Mapped[datetime] = mapped_column(nullable=False)
    delivery_date: Mapped[datetime] = mapped_column(nullable=False)
    invoice_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("invoices.id"), nullable=True,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    items: Mapped[list["OrderItemModel"]] = relationship(
        back_populates="order",
        order_by="OrderItemModel.position",
        cascade="save-update, merge",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def to_dto(self) -> OrderInfo:
        return OrderInfo(
            id=self.id,
            number=self.number,
            customer_id=self.customer_id,
            type=OrderType(self.type),
            status=OrderStatus(self.status),
            amount=self.amount,
            material_cost=self.material_cost,
            materials=self.materials,
            material_ids=_uuids(self.material_ids),
            details=self.details,
            order_date=self.order_date,
            delivery_date=self.delivery_date,
            invoice_id=self.invoice_id,
            items=tuple(i.to_dto() for i in self.items),
            version=self.version,
        )

    def __repr__(self) -> str:
        return f"<OrderModel {self.number} {self.type}/{self.status}>"


class OrderItemModel(Base):
    __tablename__ = "order_items"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_item_quantity_positive"),
        Index("idx_order_item_order", "order_id"),
    )

    order_id: Mapped[UUID] = mapped_column(ForeignKey("orders.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    line_id: Mapped[UUID] = mapped_column(nullable=False)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Money] = mapped_column(nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[UUID | None] = mapped_column(nullable=True)
    material_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)

    order: Mapped[OrderModel] = relationship(back_populates="items")

    def to_dto(self) -> OrderItemInfo:
        return OrderItemInfo(
            line_id=self.line_id,
            kind=CartLineKind(self.kind),
            name=self.name,
            price=self.price,
            quantity=self.quantity,
            product_id=self.product_id,
            material_ids=_uuids(self.material_ids),
            details=self.details,
        )


class InvoiceModel(TrackedBase):
    """Customer invoice; one item per cart line."""

    __tablename__ = "invoices"

    __table_args__ = (
        CheckConstraint("deposit >= 0", name="ck_invoice_deposit_non_negative"),
        CheckConstraint("deposit <= total", name="ck_invoice_deposit_range"),
        Index("idx_invoice_customer", "customer_id"),
        Index("idx_invoice_status", "status"),
    )

    number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    date: Mapped[datetime] = mapped_column(nullable=False)
    due_date: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    subtotal: Mapped[Money] = mapped_column(nullable=False)
    tax_rate: Mapped[Rate] = mapped_column(nullable=False)
    tax: Mapped[Money] = mapped_column(nullable=False)
    total: Mapped[Money] = mapped_column(nullable=False)
    deposit: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0"))
    payment_method: Mapped[str | None] = mapped_column(String(64), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    items: Mapped[list["InvoiceItemModel"]] = relationship(
        back_populates="invoice",
        order_by="InvoiceItemModel.position",
        cascade="save-update, merge",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    @hybrid_property
    def amount_due(self) -> Decimal:
        return self.total - self.deposit

    def to_dto(self) -> InvoiceInfo:
        return InvoiceInfo(
            id=self.id,
            number=self.number,
            customer_id=self.customer_id,
            date=self.date,
            due_date=self.due_date,
            status=InvoiceStatus(self.status),
            subtotal=self.subtotal,
            tax_rate=self.tax_rate,
            tax=self.tax,
            total=self.total,
            deposit=self.deposit,
            payment_method=self.payment_method,
            items=tuple(i.to_dto() for i in self.items),
            version=self.version,
        )

    def __repr__(self) -> str:
        return f"<InvoiceModel {self.number} {self.status} due={self.amount_due}>"


class InvoiceItemModel(Base):
    __tablename__ = "invoice_items"

    __table_args__ = (
        Index("idx_invoice_item_invoice", "invoice_id"),
        Index("idx_invoice_item_order", "order_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(ForeignKey("invoices.id"), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    line_id: Mapped[UUID] = mapped_column(nullable=False)
    order_id: Mapped[UUID | None] = mapped_column(ForeignKey("orders.id"), nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Money] = mapped_column(nullable=False)
    total: Mapped[Money] = mapped_column(nullable=False)

    invoice: Mapped[InvoiceModel] = relationship(back_populates="items")

    def to_dto(self) -> InvoiceItemInfo:
        return InvoiceItemInfo(
            line_id=self.line_id,
            order_id=self.order_id,
            name=self.name,
            quantity=self.quantity,
            price=self.price,
            total=self.total,
        )
