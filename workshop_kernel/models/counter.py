"""
Module: workshop_kernel.models.counter
Responsibility: Per-prefix counters behind human-readable document numbers
    (PO-000001, TO-000001, INV-000001, ...).
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One row per prefix (uq_document_counter_prefix).
    - Versioned: two transactions allocating from the same prefix cannot
      both commit; the loser is retried by the TransactionRunner and
      receives the next value.
"""

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from workshop_kernel.db.base import Base


class DocumentCounter(Base):
    __tablename__ = "document_counters"

    __table_args__ = (
        UniqueConstraint("prefix", name="uq_document_counter_prefix"),
    )

    prefix: Mapped[str] = mapped_column(String(16), nullable=False)
    current_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<DocumentCounter {self.prefix}={self.current_value}>"
