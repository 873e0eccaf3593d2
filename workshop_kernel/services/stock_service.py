"""
StockService -- the only writer of InventoryRecord.stock.

Responsibility:
    Credits and debits per-location stock on behalf of the receiving,
    transfer and checkout engines.

Architecture position:
    Kernel > Services -- imperative shell.  Always called inside a
    TransactionRunner body with the body's session; never commits.

Invariants enforced:
    - Non-negative stock: a debit larger than the current stock raises
      InsufficientStockError before anything is written, which aborts
      the surrounding transaction.
    - Positive whole quantities only.
    - Each change bumps the record's version, so concurrent writers to the
      same record conflict at flush time and are retried.

Failure modes:
    - InventoryRecordNotFoundError: record id does not exist.
    - InsufficientStockError: debit exceeds stock.
    - InvalidQuantityError: quantity is not a positive integer.
"""

from uuid import UUID

from sqlalchemy.orm import Session

from workshop_kernel.domain.clock import Clock, SystemClock
from workshop_kernel.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    InventoryRecordNotFoundError,
)
from workshop_kernel.logging_config import get_logger
from workshop_kernel.models.inventory import InventoryRecord

logger = get_logger("services.stock")


def validate_quantity(name: str, quantity: object) -> int:
    """Return ``quantity`` if it is a positive int, else raise InvalidQuantityError."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantityError(name, quantity)
    return quantity


class StockService:
    """
    Credit/debit operations on InventoryRecord.

    Contract:
        Stateless apart from the clock; the session is passed per call so
        one instance serves every transaction attempt.

    Non-goals:
        - Does NOT call ``session.commit()``; the runner owns the boundary.
        - Does NOT create records (transfer completion does that itself).
    """

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()

    def get(self, session: Session, record_id: UUID) -> InventoryRecord:
        record = session.get(InventoryRecord, record_id)
        if record is None:
            raise InventoryRecordNotFoundError(str(record_id))
        return record

    def credit(
        self,
        session: Session,
        record_id: UUID,
        quantity: int,
        *,
        missing_ok: bool = False,
    ) -> InventoryRecord | None:
        """
        Add ``quantity`` to the record's stock.

        Returns the record, or None when ``missing_ok`` and the record
        no longer exists.
        """
        validate_quantity(str(record_id), quantity)
        record = session.get(InventoryRecord, record_id)
        if record is None:
            if missing_ok:
                logger.warning(
                    "stock_credit_skipped_missing_record",
                    extra={"record_id": str(record_id), "quantity": quantity},
                )
                return None
            raise InventoryRecordNotFoundError(str(record_id))

        record.stock += quantity
        record.updated_at = self._clock.now()
        session.flush()

        logger.debug(
            "stock_credited",
            extra={
                "record_id": str(record.id),
                "quantity": quantity,
                "stock_after": record.stock,
            },
        )
        return record

    def debit(
        self,
        session: Session,
        record_id: UUID,
        quantity: int,
        *,
        missing_ok: bool = False,
    ) -> InventoryRecord | None:
        """
        Remove ``quantity`` from the record's stock.

        Returns the record, or None when ``missing_ok`` and there is no
        such record (an item sold without stock tracking).

        Raises:
            InsufficientStockError: ``stock < quantity``; nothing is written.
        """
        record = session.get(InventoryRecord, record_id)
        if record is None:
            if missing_ok:
                logger.info(
                    "stock_debit_skipped_untracked",
                    extra={"record_id": str(record_id), "quantity": quantity},
                )
                return None
            raise InventoryRecordNotFoundError(str(record_id))
        validate_quantity(record.name, quantity)

        if record.stock < quantity:
            logger.info(
                "stock_debit_rejected",
                extra={
                    "record_id": str(record.id),
                    "item_name": record.name,
                    "requested": quantity,
                    "available": record.stock,
                },
            )
            raise InsufficientStockError(
                item_id=str(record.id),
                item_name=record.name,
                requested=quantity,
                available=record.stock,
            )

        record.stock -= quantity
        record.updated_at = self._clock.now()
        session.flush()

        logger.debug(
            "stock_debited",
            extra={
                "record_id": str(record.id),
                "quantity": quantity,
                "stock_after": record.stock,
            },
        )
        return record
