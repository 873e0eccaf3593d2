"""
Transfer Engine (``workshop_modules.transfers.service``).

Responsibility
--------------
Moves stock between two locations in three steps: debit the source on
create, credit (or create) the destination on complete, credit the source
back on cancel.

Architecture
------------
Layer: **Modules** -- orchestration over kernel services.

- ``create``: request validated before the transaction; one runner call
  checks every source record, debits it and writes the PENDING order.
- ``complete``: a read-only planning pass outside the transaction finds the
  likely destination records; the runner body then re-reads the order,
  re-checks PENDING and re-resolves every destination before crediting or
  creating.  The in-transaction answer always wins.
- ``cancel``: one runner call credits every source still present.

Invariants
----------
- Conservation: source stock drops by the transferred quantity at create;
  the destination gains exactly that at complete; cancel restores the
  source.  Nothing is lost or double-counted while PENDING.
- No duplicate destinations: (location, sku) is unique, and so is
  (location, name) among SKU-less records.  Two completions racing to
  create the same record collide; the loser is retried and its re-check
  finds the record that now exists.
- COMPLETED and CANCELLED are terminal.

Failure Modes
-------------
- ``InvalidTransferError``: same locations, no items, bad quantity, or a
  source record that is not at the source location.
- ``InventoryRecordNotFoundError``: source record missing at create.
- ``InsufficientStockError``: any item short at create (nothing written).
- ``TransferOrderNotFoundError`` / ``InvalidStateError``.
- ``TransactionConflictError``: retries exhausted.
"""

from __future__ import annotations

from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from workshop_kernel.db.transaction import TransactionRunner
from workshop_kernel.domain.clock import Clock, SystemClock
from workshop_kernel.exceptions import (
    InvalidStateError,
    InvalidTransferError,
    TransferOrderNotFoundError,
)
from workshop_kernel.logging_config import LogContext, get_logger
from workshop_kernel.models.inventory import InventoryRecord
from workshop_kernel.selectors.inventory_selector import InventorySelector
from workshop_kernel.services.document_numbers import DocumentNumberService
from workshop_kernel.services.stock_service import StockService
from workshop_modules.transfers.helpers import match_key, validate_transfer_request
from workshop_modules.transfers.models import (
    DestinationPlan,
    TransferLine,
    TransferOrderInfo,
    TransferResult,
    TransferStatus,
)
from workshop_modules.transfers.orm import TransferOrderItemModel, TransferOrderModel
from workshop_modules.transfers.workflows import TRANSFER_WORKFLOW

logger = get_logger("modules.transfers.service")

_ENTITY = "TransferOrder"


class TransferEngine:
    """
    Three-state stock transfer between locations.

    Contract
    --------
    Each public mutation is exactly one ``TransactionRunner.run`` call
    (``complete`` adds a read-only planning pass before it).  Results are
    frozen DTOs.

    Non-goals
    ---------
    - Shipping, carriers and partial completion of a transfer.
    """

    def __init__(
        self,
        runner: TransactionRunner,
        clock: Clock | None = None,
        *,
        stock: StockService | None = None,
        numbers: DocumentNumberService | None = None,
    ):
        self._runner = runner
        self._clock = clock or SystemClock()
        self._stock = stock or StockService(self._clock)
        self._numbers = numbers or DocumentNumberService()

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    def create(
        self,
        from_location_id: UUID,
        to_location_id: UUID,
        items: Sequence[TransferLine],
        notes: str | None = None,
    ) -> TransferOrderInfo:
        """
        Debit the source and open a PENDING transfer.

        Preconditions:
            - Source and destination differ; at least one item.
            - Every source record exists at ``from_location_id`` and has
              ``stock >= quantity``.

        Postconditions:
            - Source stock reduced by each quantity.
            - A PENDING order whose items snapshot their source records.
        """
        lines = validate_transfer_request(from_location_id, to_location_id, items)

        def body(session: Session) -> TransferOrderInfo:
            now = self._clock.now()
            order = TransferOrderModel(
                number=self._numbers.next_number(
                    session, DocumentNumberService.TRANSFER_ORDER
                ),
                from_location_id=from_location_id,
                to_location_id=to_location_id,
                status=TransferStatus.PENDING.value,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
            order.items = []
            for position, line in enumerate(lines):
                source = self._stock.get(session, line.inventory_item_id)
                if source.location_id != from_location_id:
                    raise InvalidTransferError(
                        f"{source.name} is not stocked at the source location"
                    )
                self._stock.debit(session, source.id, line.quantity)
                order.items.append(
                    TransferOrderItemModel(
                        position=position,
                        inventory_item_id=source.id,
                        quantity=line.quantity,
                        name=source.name,
                        sku=source.sku,
                        category=source.category,
                        supplier=source.supplier,
                        cost_price=source.cost_price,
                        retail_price=source.retail_price,
                        reorder_level=source.reorder_level,
                    )
                )
            session.add(order)
            session.flush()
            return order.to_dto()

        with LogContext.bind(location_id=from_location_id):
            transfer = self._runner.run(body, operation="create_transfer")
            logger.info(
                "transfer_created",
                extra={
                    "transfer_id": str(transfer.id),
                    "number": transfer.number,
                    "to_location_id": str(to_location_id),
                    "item_count": len(transfer.items),
                    "total_quantity": transfer.total_quantity,
                },
            )
        return transfer

    # ------------------------------------------------------------------
    # complete
    # ------------------------------------------------------------------

    def plan_destinations(self, transfer_id: UUID) -> tuple[DestinationPlan, ...]:
        """
        Read-only guess of each item's destination record.

        Used as the planning phase of ``complete``; the transaction never
        trusts it without re-resolving.
        """
        with self._runner.session_factory() as session:
            order = self._load(session, transfer_id)
            if order.status != TransferStatus.PENDING.value:
                raise InvalidStateError(_ENTITY, str(order.id), order.status, "complete")
            selector = InventorySelector(session)
            plan = []
            for item in order.items:
                match = self._find_destination_info(
                    selector, order.to_location_id, item.sku, item.name,
                )
                plan.append(
                    DestinationPlan(
                        inventory_item_id=item.inventory_item_id,
                        destination_id=match.id if match is not None else None,
                    )
                )
            return tuple(plan)

    def complete(self, transfer_id: UUID) -> TransferResult:
        """
        Credit the destination and mark the transfer COMPLETED.

        Items with a matching destination record (same SKU at the
        destination, or same name when the item has no SKU) credit it;
        others create a new record there, copying descriptive fields from
        the live source record if it still exists, else from the snapshot.
        """
        with LogContext.bind(document_id=transfer_id):
            planned = {p.inventory_item_id: p.destination_id
                       for p in self.plan_destinations(transfer_id)}

            def body(session: Session) -> TransferResult:
                order = self._load(session, transfer_id)
                transition = TRANSFER_WORKFLOW.require(
                    order.status, "complete", entity_type=_ENTITY, entity_id=str(order.id),
                )
                now = self._clock.now()
                destinations: dict[UUID, UUID] = {}
                created: list[UUID] = []

                for item in order.items:
                    dest = self._find_destination(
                        session, order.to_location_id, item.sku, item.name,
                    )
                    expected = planned.get(item.inventory_item_id)
                    actual = dest.id if dest is not None else None
                    if expected != actual:
                        logger.info(
                            "transfer_destination_replanned",
                            extra={
                                "inventory_item_id": str(item.inventory_item_id),
                                "planned_destination_id": str(expected) if expected else None,
                                "destination_id": str(actual) if actual else None,
                            },
                        )

                    if dest is not None:
                        self._stock.credit(session, dest.id, item.quantity)
                    else:
                        dest = self._create_destination(session, order, item, now)
                        created.append(dest.id)
                    destinations[item.inventory_item_id] = dest.id

                order.status = transition.to_state
                order.completed_at = now
                order.updated_at = now
                session.flush()
                return TransferResult(
                    transfer=order.to_dto(),
                    destinations=destinations,
                    created_records=tuple(created),
                )

            result = self._runner.run(body, operation="complete_transfer")
            logger.info(
                "transfer_completed",
                extra={
                    "credited_count": len(result.destinations) - len(result.created_records),
                    "created_count": len(result.created_records),
                    "total_quantity": result.transfer.total_quantity,
                },
            )
        return result

    def _create_destination(
        self,
        session: Session,
        order: TransferOrderModel,
        item: TransferOrderItemModel,
        now: datetime,
    ) -> InventoryRecord:
        source = session.get(InventoryRecord, item.inventory_item_id)
        template = source if source is not None else item
        record = InventoryRecord(
            location_id=order.to_location_id,
            sku=item.sku or None,
            # A SKU-less record is matched by name, so it keeps the snapshot name
            name=template.name if item.sku else item.name,
            category=template.category,
            supplier=template.supplier,
            stock=item.quantity,
            cost_price=template.cost_price,
            retail_price=template.retail_price,
            reorder_level=template.reorder_level,
            created_at=now,
            updated_at=now,
        )
        session.add(record)
        # Surfaces a concurrent duplicate as IntegrityError for the runner
        session.flush()
        logger.info(
            "transfer_destination_created",
            extra={
                "inventory_item_id": str(record.id),
                "source_present": source is not None,
                "stock": record.stock,
            },
        )
        return record

    @staticmethod
    def _find_destination(
        session: Session, location_id: UUID, sku: str | None, name: str,
    ) -> InventoryRecord | None:
        kind, value = match_key(sku, name)
        column = InventoryRecord.sku if kind == "sku" else InventoryRecord.name
        return session.execute(
            select(InventoryRecord)
            .where(InventoryRecord.location_id == location_id, column == value)
            .order_by(InventoryRecord.created_at, InventoryRecord.id)
            .limit(1)
        ).scalar_one_or_none()

    @staticmethod
    def _find_destination_info(
        selector: InventorySelector, location_id: UUID, sku: str | None, name: str,
    ):
        kind, value = match_key(sku, name)
        if kind == "sku":
            return selector.find_by_sku(location_id, value)
        return selector.find_by_name(location_id, value)

    # ------------------------------------------------------------------
    # cancel
    # ------------------------------------------------------------------

    def cancel(self, transfer_id: UUID) -> TransferResult:
        """
        Return in-flight stock to the source and mark CANCELLED.

        A source record deleted since creation cannot be credited; its
        quantity is reported in ``untracked_items`` and logged.
        """

        def body(session: Session) -> TransferResult:
            order = self._load(session, transfer_id)
            transition = TRANSFER_WORKFLOW.require(
                order.status, "cancel", entity_type=_ENTITY, entity_id=str(order.id),
            )
            untracked: list[UUID] = []
            for item in order.items:
                record = self._stock.credit(
                    session, item.inventory_item_id, item.quantity, missing_ok=True,
                )
                if record is None:
                    untracked.append(item.inventory_item_id)

            now = self._clock.now()
            order.status = transition.to_state
            order.completed_at = now
            order.updated_at = now
            session.flush()
            return TransferResult(transfer=order.to_dto(), untracked_items=tuple(untracked))

        with LogContext.bind(document_id=transfer_id):
            result = self._runner.run(body, operation="cancel_transfer")
            if result.untracked_items:
                lost = {i.inventory_item_id: i.quantity for i in result.transfer.items}
                logger.warning(
                    "transfer_cancel_stock_untracked",
                    extra={
                        "untracked_items": [str(i) for i in result.untracked_items],
                        "untracked_quantity": sum(lost[i] for i in result.untracked_items),
                    },
                )
            logger.info(
                "transfer_cancelled",
                extra={"returned_count": len(result.transfer.items) - len(result.untracked_items)},
            )
        return result

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_transfer(self, transfer_id: UUID) -> TransferOrderInfo:
        with self._runner.session_factory() as session:
            return self._load(session, transfer_id).to_dto()

    def list_for_location(
        self,
        location_id: UUID,
        status: TransferStatus | str | None = None,
    ) -> list[TransferOrderInfo]:
        """Transfers where ``location_id`` is the source or the destination."""
        stmt = (
            select(TransferOrderModel)
            .where(or_(
                TransferOrderModel.from_location_id == location_id,
                TransferOrderModel.to_location_id == location_id,
            ))
            .order_by(TransferOrderModel.number)
        )
        if status is not None:
            stmt = stmt.where(TransferOrderModel.status == TransferStatus(status).value)
        with self._runner.session_factory() as session:
            return [o.to_dto() for o in session.execute(stmt).scalars()]

    @staticmethod
    def _load(session: Session, transfer_id: UUID) -> TransferOrderModel:
        order = session.get(TransferOrderModel, transfer_id)
        if order is None:
            raise TransferOrderNotFoundError(str(transfer_id))
        return order
