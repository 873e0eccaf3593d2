"""
Checkout Engine (``workshop_modules.checkout.service``).

Responsibility
--------------
Turns a point-of-sale cart into stock debits, orders and one invoice, and
records later payments against existing invoices.

Architecture
------------
Layer: **Modules** -- orchestration over kernel services.  A checkout is a
saga of short transactions, not one big one:

1. Debit stock.  By default every cart line debits in its own transaction
   (product units, or one unit of each attached material per line unit);
   with ``prevalidate_cart`` the whole cart's requirements are debited in a
   single transaction instead.  A product with no inventory record behind
   it sells without a debit and with zero material cost.
2. Create the orders: one consolidated Repair order for all repair lines,
   one order per remaining line.
3. Create the invoice, one item per cart line, each pointing at its order.
4. Patch each order's ``invoice_id`` (``relink_orders``).

Invariants
----------
- Stock never goes negative; an ``OutOfStockError`` names the line item
  that could not be fulfilled.
- Per-line mode: debits of earlier lines survive a later failure and are
  listed in ``OutOfStockError.committed_debits``.
- Prevalidated mode: an ``OutOfStockError`` leaves stock untouched.
- ``amount_due == total - deposit`` and the invoice status is derived from
  those two numbers only.
- Steps 2-4 are not atomic together.  A failure after orders exist raises
  ``CheckoutIncompleteError``; ``relink_orders`` is idempotent and finishes
  step 4 for any invoice.

Failure Modes
-------------
- ``EmptyCartError`` / ``InvalidCheckoutError`` / ``InvalidQuantityError``:
  raised before any transaction.
- ``OutOfStockError`` / ``InventoryRecordNotFoundError`` (missing material):
  debit phase.
- ``CheckoutIncompleteError``: orders created, invoice or link step failed.
- ``InvoiceNotFoundError`` / ``InvalidStateError``: payment on a missing or
  fully paid invoice.
- ``TransactionConflictError``: retries exhausted.

Usage::

    engine = CheckoutEngine(runner, clock)
    result = engine.checkout(
        [CartLine(CartLineKind.PRODUCT, "Wax", Decimal("12.00"), 2, product_id=wax_id)],
        amount_paid=Decimal("10"),
    )
    engine.pay_invoice(result.invoice.id, result.invoice.amount_due)
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from workshop_kernel.db.transaction import TransactionRunner
from workshop_kernel.domain.clock import Clock, SystemClock
from workshop_kernel.exceptions import (
    CheckoutIncompleteError,
    InsufficientStockError,
    InvalidCheckoutError,
    InvoiceNotFoundError,
    OrderNotFoundError,
    OutOfStockError,
)
from workshop_kernel.logging_config import LogContext, get_logger
from workshop_kernel.services.document_numbers import DocumentNumberService
from workshop_kernel.services.stock_service import StockService
from workshop_modules.checkout.config import CheckoutConfig
from workshop_modules.checkout.helpers import (
    aggregate_requirements,
    apply_payment,
    compute_invoice_totals,
    derive_invoice_status,
    initial_deposit,
    line_total,
    partition_cart,
    repair_details,
    unique_materials,
    validate_amount,
    validate_cart,
    validate_tax_rate,
)
from workshop_modules.checkout.models import (
    CartLine,
    CartLineKind,
    CheckoutResult,
    InvoiceInfo,
    InvoiceStatus,
    OrderInfo,
    OrderStatus,
    OrderType,
    RelinkResult,
)
from workshop_modules.checkout.orm import (
    InvoiceItemModel,
    InvoiceModel,
    OrderItemModel,
    OrderModel,
)
from workshop_modules.checkout.workflows import INVOICE_WORKFLOW

logger = get_logger("modules.checkout.service")

_INVOICE = "Invoice"
_ZERO = Decimal("0")


class CheckoutEngine:
    """
    Point-of-sale checkout and invoice payment.

    Contract
    --------
    ``checkout`` runs a bounded sequence of runner transactions (see the
    module docstring); ``pay_invoice`` and ``relink_orders`` are one
    transaction each.  Results are frozen DTOs.

    Non-goals
    ---------
    - Payment processing, refunds and customer accounts.
    - Order fulfilment after checkout (repair and stitch jobs stay Placed).
    """

    def __init__(
        self,
        runner: TransactionRunner,
        clock: Clock | None = None,
        *,
        config: CheckoutConfig | None = None,
        stock: StockService | None = None,
        numbers: DocumentNumberService | None = None,
    ):
        self._runner = runner
        self._clock = clock or SystemClock()
        self._config = config or CheckoutConfig()
        self._stock = stock or StockService(self._clock)
        self._numbers = numbers or DocumentNumberService()

    @property
    def config(self) -> CheckoutConfig:
        return self._config

    # ------------------------------------------------------------------
    # checkout
    # ------------------------------------------------------------------

    def checkout(
        self,
        cart: Sequence[CartLine] | None = None,
        customer_id: str | None = None,
        payment_method: str | None = None,
        amount_paid: Decimal | int | str = 0,
        tax_rate: Decimal | str | None = None,
        invoice_id: UUID | None = None,
    ) -> CheckoutResult:
        """
        Check out a cart, or pay an existing invoice when ``invoice_id`` is
        given without a cart.

        Postconditions (cart):
            - Stock debited for every line backed by an inventory record.
            - Orders created and linked to a new invoice.
            - ``deposit == min(amount_paid, total)``.
        """
        if invoice_id is not None:
            if cart:
                raise InvalidCheckoutError(
                    "a cart cannot be checked out against an existing invoice"
                )
            return CheckoutResult(
                invoice=self.pay_invoice(invoice_id, amount_paid, payment_method)
            )

        lines = validate_cart(cart)
        rate = validate_tax_rate(
            self._config.default_tax_rate if tax_rate is None else tax_rate
        )
        paid = validate_amount(amount_paid)
        customer = customer_id or self._config.walk_in_customer_id

        logger.info(
            "checkout_started",
            extra={
                "customer_id": customer,
                "line_count": len(lines),
                "prevalidate_cart": self._config.prevalidate_cart,
            },
        )

        if self._config.prevalidate_cart:
            costs, debited = self._debit_cart(lines)
        else:
            costs, debited = self._debit_lines(lines)
        debits = tuple(debited.items())

        try:
            orders, line_orders = self._runner.run(
                lambda session: self._create_orders(session, lines, costs, customer),
                operation="checkout_create_orders",
            )
        except Exception:
            logger.error(
                "checkout_orders_failed",
                extra={"debits": [(str(r), u) for r, u in debits]},
            )
            raise
        order_ids = tuple(o.id for o in orders)

        try:
            invoice = self._runner.run(
                lambda session: self._create_invoice(
                    session, lines, line_orders, customer, rate, paid, payment_method,
                ),
                operation="checkout_create_invoice",
            )
        except Exception as exc:
            logger.error(
                "checkout_incomplete",
                extra={"stage": "invoice", "order_ids": [str(o) for o in order_ids]},
            )
            raise CheckoutIncompleteError("invoice", order_ids) from exc

        with LogContext.bind(document_id=invoice.id):
            try:
                self.relink_orders(invoice.id)
            except Exception as exc:
                logger.error(
                    "checkout_incomplete",
                    extra={"stage": "link", "order_ids": [str(o) for o in order_ids]},
                )
                raise CheckoutIncompleteError("link", order_ids, invoice.id) from exc

            orders = tuple(self.get_order(o) for o in order_ids)
            logger.info(
                "checkout_completed",
                extra={
                    "invoice_number": invoice.number,
                    "order_count": len(orders),
                    "total": str(invoice.total),
                    "deposit": str(invoice.deposit),
                    "status": invoice.status.value,
                },
            )
        return CheckoutResult(invoice=invoice, orders=orders, debits=debits)

    def _debit_lines(
        self, lines: Sequence[CartLine],
    ) -> tuple[dict[UUID, Decimal], dict[UUID, int]]:
        """One transaction per line; returns (cost per line id, units per record)."""
        costs: dict[UUID, Decimal] = {}
        debited: dict[UUID, int] = {}
        committed: list[tuple[str, int]] = []

        for line in lines:
            requirements = line.requirements
            if not requirements:
                costs[line.line_id] = _ZERO
                continue
            untracked_ok = line.kind is CartLineKind.PRODUCT

            def body(
                session: Session, requirements=requirements, untracked_ok=untracked_ok,
            ) -> tuple[Decimal, list[tuple[UUID, int]]]:
                cost = _ZERO
                taken: list[tuple[UUID, int]] = []
                for record_id, units in requirements:
                    record = self._stock.debit(
                        session, record_id, units, missing_ok=untracked_ok,
                    )
                    if record is None:
                        continue
                    cost += record.cost_price * units
                    taken.append((record_id, units))
                return cost, taken

            try:
                cost, taken = self._runner.run(body, operation="checkout_debit_line")
            except InsufficientStockError as exc:
                logger.warning(
                    "checkout_line_out_of_stock",
                    extra={
                        "line_name": line.name,
                        "item_name": exc.item_name,
                        "committed_debit_count": len(committed),
                    },
                )
                raise OutOfStockError(
                    exc.item_id,
                    exc.item_name,
                    exc.requested,
                    exc.available,
                    committed_debits=tuple(committed),
                ) from exc
            except Exception:
                if committed:
                    logger.warning(
                        "checkout_aborted_after_partial_debit",
                        extra={"committed_debits": committed},
                    )
                raise
            costs[line.line_id] = cost
            for record_id, units in taken:
                debited[record_id] = debited.get(record_id, 0) + units
                committed.append((str(record_id), units))
        return costs, debited

    def _debit_cart(
        self, lines: Sequence[CartLine],
    ) -> tuple[dict[UUID, Decimal], dict[UUID, int]]:
        """Whole cart in one transaction; returns (cost per line id, units per record)."""
        required = aggregate_requirements(lines)
        # a record also used as a material must exist
        untracked_ok = {
            line.product_id for line in lines if line.kind is CartLineKind.PRODUCT
        } - {m.id for line in lines for m in line.materials}

        def body(session: Session) -> tuple[dict[UUID, Decimal], dict[UUID, int]]:
            unit_costs: dict[UUID, Decimal] = {}
            debited: dict[UUID, int] = {}
            for record_id, units in required.items():
                record = self._stock.debit(
                    session, record_id, units, missing_ok=record_id in untracked_ok,
                )
                if record is None:
                    unit_costs[record_id] = _ZERO
                    continue
                unit_costs[record_id] = record.cost_price
                debited[record_id] = units
            costs = {
                line.line_id: sum(
                    (unit_costs[record_id] * units for record_id, units in line.requirements),
                    _ZERO,
                )
                for line in lines
            }
            return costs, debited

        try:
            return self._runner.run(body, operation="checkout_debit_cart")
        except InsufficientStockError as exc:
            logger.warning(
                "checkout_cart_out_of_stock",
                extra={"item_name": exc.item_name, "requested": exc.requested},
            )
            raise OutOfStockError(
                exc.item_id, exc.item_name, exc.requested, exc.available,
            ) from exc

    def _create_orders(
        self,
        session: Session,
        lines: Sequence[CartLine],
        costs: dict[UUID, Decimal],
        customer_id: str,
    ) -> tuple[tuple[OrderInfo, ...], dict[UUID, UUID]]:
        now = self._clock.now()
        repairs, individual = partition_cart(lines)
        created: list[tuple[OrderModel, list[CartLine]]] = []

        if repairs:
            material_ids, material_names = unique_materials(repairs)
            order = self._new_order(
                session,
                prefix=DocumentNumberService.REPAIR,
                order_type=OrderType.REPAIR,
                status=OrderStatus.PLACED,
                customer_id=customer_id,
                now=now,
                delivery_days=self._config.repair_delivery_days,
            )
            order.amount = sum((line_total(line) for line in repairs), _ZERO)
            order.material_cost = sum((costs[line.line_id] for line in repairs), _ZERO)
            order.materials = ", ".join(material_names)
            order.material_ids = [str(m) for m in material_ids]
            order.details = repair_details(repairs)
            created.append((order, repairs))

        for line in individual:
            if line.kind is CartLineKind.PRODUCT:
                order_type, status = OrderType.SHIPPED, OrderStatus.COMPLETED
            else:
                order_type, status = OrderType.ORDER, OrderStatus.PLACED
            material_ids, material_names = unique_materials([line])
            order = self._new_order(
                session,
                prefix=DocumentNumberService.ORDER,
                order_type=order_type,
                status=status,
                customer_id=customer_id,
                now=now,
                delivery_days=self._config.order_delivery_days,
            )
            order.amount = line_total(line)
            order.material_cost = costs[line.line_id]
            order.materials = ", ".join(material_names)
            order.material_ids = [str(m) for m in material_ids]
            order.details = line.details
            created.append((order, [line]))

        line_orders: dict[UUID, UUID] = {}
        for order, order_lines in created:
            order.items = [
                OrderItemModel(
                    position=position,
                    line_id=line.line_id,
                    kind=line.kind.value,
                    name=line.name,
                    price=line.price,
                    quantity=line.quantity,
                    product_id=line.product_id,
                    material_ids=[str(m.id) for m in line.materials],
                    details=line.details,
                )
                for position, line in enumerate(order_lines)
            ]
            session.add(order)
        session.flush()

        for order, order_lines in created:
            for line in order_lines:
                line_orders[line.line_id] = order.id
        return tuple(order.to_dto() for order, _ in created), line_orders

    def _new_order(
        self,
        session: Session,
        *,
        prefix: str,
        order_type: OrderType,
        status: OrderStatus,
        customer_id: str,
        now: datetime,
        delivery_days: int,
    ) -> OrderModel:
        return OrderModel(
            number=self._numbers.next_number(session, prefix),
            customer_id=customer_id,
            type=order_type.value,
            status=status.value,
            order_date=now,
            delivery_date=now + timedelta(days=delivery_days),
            created_at=now,
            updated_at=now,
        )

    def _create_invoice(
        self,
        session: Session,
        lines: Sequence[CartLine],
        line_orders: dict[UUID, UUID],
        customer_id: str,
        tax_rate: Decimal,
        amount_paid: Decimal,
        payment_method: str | None,
    ) -> InvoiceInfo:
        now = self._clock.now()
        totals = compute_invoice_totals(lines, tax_rate)
        deposit = initial_deposit(totals.total, amount_paid)
        invoice = InvoiceModel(
            number=self._numbers.next_number(session, DocumentNumberService.INVOICE),
            customer_id=customer_id,
            date=now,
            due_date=now + timedelta(days=self._config.invoice_due_days),
            status=derive_invoice_status(totals.total, deposit).value,
            subtotal=totals.subtotal,
            tax_rate=tax_rate,
            tax=totals.tax,
            total=totals.total,
            deposit=deposit,
            payment_method=payment_method,
            created_at=now,
            updated_at=now,
        )
        invoice.items = [
            InvoiceItemModel(
                position=position,
                line_id=line.line_id,
                order_id=line_orders.get(line.line_id),
                name=line.name,
                quantity=line.quantity,
                price=line.price,
                total=line_total(line),
            )
            for position, line in enumerate(lines)
        ]
        session.add(invoice)
        session.flush()
        return invoice.to_dto()

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def pay_invoice(
        self,
        invoice_id: UUID,
        amount_paid: Decimal | int | str,
        payment_method: str | None = None,
    ) -> InvoiceInfo:
        """
        Credit a payment against an existing invoice.

        The credited amount is ``min(amount_paid, amount_due)``; any excess
        is not kept.  Inventory is never touched.
        """
        amount = validate_amount(amount_paid, allow_zero=False)

        def body(session: Session) -> tuple[InvoiceInfo, Decimal]:
            invoice = self._load_invoice(session, invoice_id)
            INVOICE_WORKFLOW.require(
                invoice.status, "pay", entity_type=_INVOICE, entity_id=str(invoice.id),
            )
            invoice.deposit, credited = apply_payment(invoice.total, invoice.deposit, amount)
            invoice.status = derive_invoice_status(invoice.total, invoice.deposit).value
            if payment_method:
                invoice.payment_method = payment_method
            invoice.updated_at = self._clock.now()
            session.flush()
            return invoice.to_dto(), credited

        with LogContext.bind(document_id=invoice_id):
            invoice, credited = self._runner.run(body, operation="pay_invoice")
            logger.info(
                "invoice_payment_recorded",
                extra={
                    "credited": str(credited),
                    "unapplied": str(amount - credited),
                    "amount_due": str(invoice.amount_due),
                    "status": invoice.status.value,
                },
            )
        return invoice

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def relink_orders(self, invoice_id: UUID) -> RelinkResult:
        """
        Point every order referenced by the invoice back at it.

        Idempotent: orders already linked to this invoice are left alone;
        orders linked to a different invoice are reported, not changed.
        """

        def body(session: Session) -> RelinkResult:
            invoice = self._load_invoice(session, invoice_id)
            now = self._clock.now()
            linked: list[UUID] = []
            already: list[UUID] = []
            conflicting: list[UUID] = []
            for order_id in invoice.to_dto().order_ids:
                order = session.get(OrderModel, order_id)
                if order is None:
                    continue
                if order.invoice_id is None:
                    order.invoice_id = invoice.id
                    order.updated_at = now
                    linked.append(order.id)
                elif order.invoice_id == invoice.id:
                    already.append(order.id)
                else:
                    conflicting.append(order.id)
            session.flush()
            return RelinkResult(
                invoice_id=invoice.id,
                linked=tuple(linked),
                already_linked=tuple(already),
                conflicting=tuple(conflicting),
            )

        result = self._runner.run(body, operation="relink_orders")
        if result.conflicting:
            logger.warning(
                "order_linked_to_other_invoice",
                extra={
                    "invoice_id": str(invoice_id),
                    "order_ids": [str(o) for o in result.conflicting],
                },
            )
        logger.info(
            "orders_relinked",
            extra={
                "invoice_id": str(invoice_id),
                "linked_count": len(result.linked),
                "already_linked_count": len(result.already_linked),
            },
        )
        return result

    def find_unlinked_orders(self) -> list[OrderInfo]:
        """Orders with no invoice, oldest number first."""
        stmt = (
            select(OrderModel)
            .where(OrderModel.invoice_id.is_(None))
            .order_by(OrderModel.number)
        )
        with self._runner.session_factory() as session:
            return [o.to_dto() for o in session.execute(stmt).scalars()]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_invoice(self, invoice_id: UUID) -> InvoiceInfo:
        with self._runner.session_factory() as session:
            return self._load_invoice(session, invoice_id).to_dto()

    def get_order(self, order_id: UUID) -> OrderInfo:
        with self._runner.session_factory() as session:
            order = session.get(OrderModel, order_id)
            if order is None:
                raise OrderNotFoundError(str(order_id))
            return order.to_dto()

    def list_invoices(
        self,
        customer_id: str | None = None,
        status: InvoiceStatus | str | None = None,
    ) -> list[InvoiceInfo]:
        stmt = select(InvoiceModel).order_by(InvoiceModel.number)
        if customer_id is not None:
            stmt = stmt.where(InvoiceModel.customer_id == customer_id)
        if status is not None:
            stmt = stmt.where(InvoiceModel.status == InvoiceStatus(status).value)
        with self._runner.session_factory() as session:
            return [i.to_dto() for i in session.execute(stmt).scalars()]

    @staticmethod
    def _load_invoice(session: Session, invoice_id: UUID) -> InvoiceModel:
        invoice = session.get(InvoiceModel, invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return invoice
