"""
Receiving Engine (``workshop_modules.receiving.service``).

Responsibility
--------------
Creates purchase orders and applies supplier receipts against them:
credits inventory, advances each item's received quantity, appends an
immutable reception and re-derives the order status.

Architecture
------------
Layer: **Modules** -- orchestration over kernel services.

1. Input is validated and normalised before any transaction is opened
   (zero lines dropped, repeated items merged).
2. One ``TransactionRunner.run`` call performs every read-modify-write of
   a ``receive``; a conflicting writer causes the whole body to re-run.
3. ``StockService`` does the inventory credits; status comes from the pure
   ``derive_purchase_order_status``.

Invariants
----------
- Receipt conservation: ``received_quantity <= quantity`` for every item
  (over-receipt is rejected or clamped according to the configured policy).
- Atomicity: credits, item updates, the reception and the status change
  commit together or not at all.
- Receptions are append-only.

Failure Modes
-------------
- ``NoItemsToReceiveError``: every line was zero (or clamped to zero).
- ``PurchaseOrderNotFoundError`` / ``InventoryRecordNotFoundError``.
- ``InvalidStateError``: order is Draft, Received or Cancelled.
- ``UnknownPurchaseOrderItemError``: line names an item not on the order.
- ``OverReceiptError``: line exceeds the remaining quantity (reject policy).
- ``TransactionConflictError``: retries exhausted.

Usage::

    engine = ReceivingEngine(runner, clock)
    po = engine.create_purchase_order("Acme", [PurchaseOrderLine(item_id, "Thread", 10, Decimal("2.50"))])
    result = engine.receive(po.id, [ReceiptLine(item_id, 4)])
    assert result.status is PurchaseOrderStatus.PARTIALLY_RECEIVED
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from workshop_kernel.db.transaction import TransactionRunner
from workshop_kernel.domain.clock import Clock, SystemClock
from workshop_kernel.exceptions import (
    InvalidPurchaseOrderError,
    InvalidStateError,
    NoItemsToReceiveError,
    OverReceiptError,
    PurchaseOrderNotFoundError,
    UnknownPurchaseOrderItemError,
)
from workshop_kernel.logging_config import LogContext, get_logger
from workshop_kernel.services.document_numbers import DocumentNumberService
from workshop_kernel.services.stock_service import StockService
from workshop_modules.receiving.helpers import (
    derive_purchase_order_status,
    normalize_receipt_lines,
)
from workshop_modules.receiving.models import (
    OverReceiptPolicy,
    PurchaseOrderInfo,
    PurchaseOrderLine,
    PurchaseOrderStatus,
    ReceiptLine,
    ReceiveResult,
)
from workshop_modules.receiving.orm import (
    PurchaseOrderItemModel,
    PurchaseOrderModel,
    ReceptionItemModel,
    ReceptionModel,
)
from workshop_modules.receiving.workflows import PURCHASE_ORDER_WORKFLOW

logger = get_logger("modules.receiving.service")

_ENTITY = "PurchaseOrder"


class ReceivingEngine:
    """
    Purchase-order creation and receiving.

    Contract
    --------
    Every public method is one or zero transactions; none of them hold a
    session between calls.  Results are frozen DTOs.

    Non-goals
    ---------
    - Supplier management, pricing and approval workflows.
    - Returning goods to the supplier (receptions are never reversed).
    """

    def __init__(
        self,
        runner: TransactionRunner,
        clock: Clock | None = None,
        *,
        over_receipt_policy: OverReceiptPolicy | str = OverReceiptPolicy.REJECT,
        stock: StockService | None = None,
        numbers: DocumentNumberService | None = None,
    ):
        self._runner = runner
        self._clock = clock or SystemClock()
        self._policy = OverReceiptPolicy(over_receipt_policy)
        self._stock = stock or StockService(self._clock)
        self._numbers = numbers or DocumentNumberService()

    @property
    def over_receipt_policy(self) -> OverReceiptPolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Purchase order lifecycle
    # ------------------------------------------------------------------

    def create_purchase_order(
        self,
        supplier: str,
        items: Sequence[PurchaseOrderLine],
        order_date: datetime | None = None,
        expected_date: datetime | None = None,
        status: PurchaseOrderStatus | str = PurchaseOrderStatus.ORDERED,
    ) -> PurchaseOrderInfo:
        status = PurchaseOrderStatus(status)
        if status not in (PurchaseOrderStatus.DRAFT, PurchaseOrderStatus.ORDERED):
            raise InvalidPurchaseOrderError(
                f"new purchase orders must be draft or ordered, not {status.value}"
            )
        if not supplier or not supplier.strip():
            raise InvalidPurchaseOrderError("supplier is required")
        if not items:
            raise InvalidPurchaseOrderError("at least one item is required")
        seen: set[UUID] = set()
        for line in items:
            if line.inventory_item_id in seen:
                raise InvalidPurchaseOrderError(
                    f"item {line.name} appears more than once"
                )
            seen.add(line.inventory_item_id)

        total_cost = sum((line.line_total for line in items), Decimal("0"))

        def body(session: Session) -> PurchaseOrderInfo:
            now = self._clock.now()
            po = PurchaseOrderModel(
                number=self._numbers.next_number(
                    session, DocumentNumberService.PURCHASE_ORDER
                ),
                supplier=supplier.strip(),
                order_date=order_date or now,
                expected_date=expected_date,
                status=status.value,
                total_cost=total_cost,
                created_at=now,
                updated_at=now,
            )
            po.items = [
                PurchaseOrderItemModel(
                    position=position,
                    inventory_item_id=line.inventory_item_id,
                    name=line.name,
                    quantity=line.quantity,
                    cost=line.cost,
                    received_quantity=0,
                )
                for position, line in enumerate(items)
            ]
            po.receptions = []
            session.add(po)
            session.flush()
            return po.to_dto()

        po = self._runner.run(body, operation="create_purchase_order")
        logger.info(
            "purchase_order_created",
            extra={
                "purchase_order_id": str(po.id),
                "number": po.number,
                "supplier": po.supplier,
                "status": po.status.value,
                "item_count": len(po.items),
                "total_cost": str(po.total_cost),
            },
        )
        return po

    def mark_ordered(self, purchase_order_id: UUID) -> PurchaseOrderInfo:
        return self._transition(purchase_order_id, "mark_ordered")

    def cancel_purchase_order(self, purchase_order_id: UUID) -> PurchaseOrderInfo:
        return self._transition(purchase_order_id, "cancel")

    def _transition(self, purchase_order_id: UUID, action: str) -> PurchaseOrderInfo:
        def body(session: Session) -> PurchaseOrderInfo:
            po = self._load(session, purchase_order_id)
            transition = PURCHASE_ORDER_WORKFLOW.require(
                po.status, action, entity_type=_ENTITY, entity_id=str(po.id),
            )
            if action == "cancel" and po.receptions:
                raise InvalidStateError(_ENTITY, str(po.id), po.status, action)
            po.status = transition.to_state
            po.updated_at = self._clock.now()
            session.flush()
            return po.to_dto()

        with LogContext.bind(document_id=purchase_order_id):
            po = self._runner.run(body, operation=f"purchase_order_{action}")
            logger.info(
                "purchase_order_status_changed",
                extra={"action": action, "status": po.status.value},
            )
        return po

    # ------------------------------------------------------------------
    # Receiving
    # ------------------------------------------------------------------

    def receive(
        self,
        purchase_order_id: UUID,
        receipts: Sequence[ReceiptLine],
        notes: str | None = None,
    ) -> ReceiveResult:
        """
        Apply one supplier delivery to a purchase order.

        Preconditions:
            - At least one line with a positive quantity.
            - Order status is ORDERED or PARTIALLY_RECEIVED.

        Postconditions:
            - Each accepted line credited to its inventory record and added
              to the item's ``received_quantity``.
            - One new reception listing the accepted lines.
            - Status re-derived from all items.

        Raises:
            NoItemsToReceiveError: before any transaction if every line is zero.
        """
        lines = normalize_receipt_lines(receipts)
        if not lines:
            raise NoItemsToReceiveError(str(purchase_order_id))

        def body(session: Session) -> ReceiveResult:
            po = self._load(session, purchase_order_id)
            PURCHASE_ORDER_WORKFLOW.require(
                po.status, "receive", entity_type=_ENTITY, entity_id=str(po.id),
            )
            current_status = PurchaseOrderStatus(po.status)
            items_by_record = {i.inventory_item_id: i for i in po.items}

            accepted: list[tuple[PurchaseOrderItemModel, int]] = []
            clamped: list[UUID] = []
            for line in lines:
                item = items_by_record.get(line.inventory_item_id)
                if item is None:
                    raise UnknownPurchaseOrderItemError(
                        str(po.id), str(line.inventory_item_id), line.name or "?",
                    )
                quantity = self._apply_policy(po, item, line.quantity_received)
                if quantity < line.quantity_received:
                    clamped.append(item.inventory_item_id)
                if quantity == 0:
                    continue
                self._stock.credit(session, item.inventory_item_id, quantity)
                item.received_quantity += quantity
                accepted.append((item, quantity))

            if not accepted:
                raise NoItemsToReceiveError(str(po.id))

            now = self._clock.now()
            reception = ReceptionModel(
                sequence=len(po.receptions) + 1, date=now, notes=notes,
            )
            reception.items = [
                ReceptionItemModel(
                    position=position,
                    inventory_item_id=item.inventory_item_id,
                    name=item.name,
                    quantity_received=quantity,
                )
                for position, (item, quantity) in enumerate(accepted)
            ]
            po.receptions.append(reception)

            new_status = derive_purchase_order_status(po.items, current_status)
            po.status = new_status.value
            po.updated_at = now
            session.flush()

            return ReceiveResult(
                reception=reception.to_dto(),
                status=new_status,
                purchase_order=po.to_dto(),
                clamped_items=tuple(clamped),
            )

        with LogContext.bind(document_id=purchase_order_id):
            result = self._runner.run(body, operation="receive_purchase_order")
            logger.info(
                "purchase_order_received",
                extra={
                    "reception_id": str(result.reception.id),
                    "line_count": len(result.reception.items),
                    "quantity": result.reception.total_quantity,
                    "status": result.status.value,
                    "clamped_count": len(result.clamped_items),
                },
            )
        return result

    def _apply_policy(
        self,
        po: PurchaseOrderModel,
        item: PurchaseOrderItemModel,
        requested: int,
    ) -> int:
        remaining = item.quantity - item.received_quantity
        if requested <= remaining:
            return requested
        if self._policy is OverReceiptPolicy.REJECT:
            raise OverReceiptError(
                purchase_order_id=str(po.id),
                item_name=item.name,
                ordered=item.quantity,
                already_received=item.received_quantity,
                receiving=requested,
            )
        logger.warning(
            "receipt_line_clamped",
            extra={
                "inventory_item_id": str(item.inventory_item_id),
                "requested": requested,
                "accepted": remaining,
            },
        )
        return remaining

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_purchase_order(self, purchase_order_id: UUID) -> PurchaseOrderInfo:
        with self._runner.session_factory() as session:
            return self._load(session, purchase_order_id).to_dto()

    def list_purchase_orders(
        self, status: PurchaseOrderStatus | str | None = None,
    ) -> list[PurchaseOrderInfo]:
        stmt = select(PurchaseOrderModel).order_by(PurchaseOrderModel.number)
        if status is not None:
            stmt = stmt.where(
                PurchaseOrderModel.status == PurchaseOrderStatus(status).value
            )
        with self._runner.session_factory() as session:
            return [po.to_dto() for po in session.execute(stmt).scalars()]

    @staticmethod
    def _load(session: Session, purchase_order_id: UUID) -> PurchaseOrderModel:
        po = session.get(PurchaseOrderModel, purchase_order_id)
        if po is None:
            raise PurchaseOrderNotFoundError(str(purchase_order_id))
        return po
