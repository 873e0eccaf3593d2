"""
Module: workshop_kernel.models.inventory
Responsibility: ORM persistence for per-location stock records, the one entity
    shared by receiving, transfers and checkout.
Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - stock >= 0: guarded by StockService before every debit and by the
      ck_inventory_stock_non_negative CHECK constraint.
    - One record per (location_id, sku) when a SKU is present
      (uq_inventory_location_sku), and one per (location_id, name) among
      SKU-less records (uq_inventory_location_name_no_sku).  These are the
      two destination matching keys of a transfer.
    - Lost updates are impossible: ``version`` is the mapper's
      version_id_col, so a concurrent change surfaces as StaleDataError.

Failure modes:
    - IntegrityError on a duplicate matching key or negative stock.
    - StaleDataError on a concurrent modification (retried by the runner).
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Index, Integer, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from workshop_kernel.db.base import TrackedBase
from workshop_kernel.db.types import Money
from workshop_kernel.domain.dtos import InventoryRecordInfo


class InventoryRecord(TrackedBase):
    """
    Stock of one item at one location.

    Created and deleted by inventory management (outside the engines);
    the engines only credit and debit ``stock`` through StockService,
    except transfer completion which may create a destination record.
    """

    __tablename__ = "inventory_records"

    __table_args__ = (
        UniqueConstraint("location_id", "sku", name="uq_inventory_location_sku"),
        CheckConstraint("stock >= 0", name="ck_inventory_stock_non_negative"),
        Index("idx_inventory_location", "location_id"),
        Index("idx_inventory_location_name", "location_id", "name"),
        Index(
            "uq_inventory_location_name_no_sku",
            "location_id",
            "name",
            unique=True,
            sqlite_where=text("sku IS NULL"),
            postgresql_where=text("sku IS NULL"),
        ),
    )

    location_id: Mapped[UUID] = mapped_column(nullable=False)
    sku: Mapped[str | None] = mapped_column(String(64), nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    supplier: Mapped[str | None] = mapped_column(String(255), nullable=True)

    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cost_price: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0"))
    retail_price: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0"))
    reorder_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.reorder_level

    def to_dto(self) -> InventoryRecordInfo:
        return InventoryRecordInfo(
            id=self.id,
            location_id=self.location_id,
            sku=self.sku,
            name=self.name,
            category=self.category,
            supplier=self.supplier,
            stock=self.stock,
            cost_price=self.cost_price,
            retail_price=self.retail_price,
            reorder_level=self.reorder_level,
            version=self.version,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def __repr__(self) -> str:
        return (
            f"<InventoryRecord {self.name!r} sku={self.sku} "
            f"location={self.location_id} stock={self.stock}>"
        )
