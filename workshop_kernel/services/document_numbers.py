"""
DocumentNumberService -- human-readable document numbers.

Responsibility:
    Allocates strictly increasing per-prefix numbers and formats them as
    ``PREFIX-000001``.

Architecture position:
    Kernel > Services.  Called inside the same runner body that creates the
    numbered document, so a rolled-back document never consumes a number.

Invariants enforced:
    - Monotonic per prefix: the counter row is the sole source of truth;
      max(number)+1 over documents is never used.
    - Concurrent allocations conflict on the counter's version column (or,
      for the very first allocation, on its unique prefix) and the loser's
      whole body is retried by the TransactionRunner.

Failure modes:
    - StaleDataError / IntegrityError propagate to the runner as conflicts.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from workshop_kernel.logging_config import get_logger
from workshop_kernel.models.counter import DocumentCounter

logger = get_logger("services.document_numbers")

NUMBER_WIDTH = 6


def format_document_number(prefix: str, value: int) -> str:
    return f"{prefix}-{value:0{NUMBER_WIDTH}d}"


class DocumentNumberService:
    """Per-prefix counters stored in ``document_counters``."""

    PURCHASE_ORDER = "PO"
    TRANSFER_ORDER = "TO"
    INVOICE = "INV"
    ORDER = "O"
    REPAIR = "R"

    def next_value(self, session: Session, prefix: str) -> int:
        if not prefix:
            raise ValueError("Document number prefix is required")

        counter = session.execute(
            select(DocumentCounter).where(DocumentCounter.prefix == prefix)
        ).scalar_one_or_none()

        if counter is None:
            counter = DocumentCounter(prefix=prefix, current_value=0)
            session.add(counter)

        counter.current_value += 1
        session.flush()

        logger.debug(
            "document_number_allocated",
            extra={"prefix": prefix, "value": counter.current_value},
        )
        return counter.current_value

    def next_number(self, session: Session, prefix: str) -> str:
        return format_document_number(prefix, self.next_value(session, prefix))

    def current_value(self, session: Session, prefix: str) -> int:
        """Last allocated value for ``prefix`` (0 if never used)."""
        value = session.execute(
            select(DocumentCounter.current_value).where(
                DocumentCounter.prefix == prefix
            )
        ).scalar_one_or_none()
        return value or 0
