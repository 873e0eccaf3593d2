"""
Tests for CheckoutEngine.

Validates:
- Product, repair and stitch lines: debits, material cost, order shapes
- Repair lines consolidated into one order
- Invoice arithmetic, deposit, status and order back-links
- Per-line debits keep earlier lines on OutOfStock; prevalidation does not
- Products with no inventory record sell without a debit; missing materials fail
- Paying existing invoices
- Saga recovery: CheckoutIncompleteError and idempotent relink_orders
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update

from workshop_kernel.exceptions import (
    CheckoutIncompleteError,
    EmptyCartError,
    InvalidCheckoutError,
    InvalidStateError,
    InventoryRecordNotFoundError,
    InvoiceNotFoundError,
    OrderNotFoundError,
    OutOfStockError,
)
from workshop_modules.checkout.config import CheckoutConfig
from workshop_modules.checkout.models import (
    CartLine,
    CartLineKind,
    InvoiceStatus,
    MaterialRef,
    OrderStatus,
    OrderType,
)
from workshop_modules.checkout.orm import InvoiceItemModel
from workshop_modules.checkout.service import CheckoutEngine

D = Decimal


@pytest.fixture
def wax(make_record):
    return make_record("Wax", stock=10, cost_price="3.00", retail_price="10.00")


@pytest.fixture
def thread(make_record):
    return make_record("Thread", stock=5, cost_price="0.50")


@pytest.fixture
def zipper(make_record):
    return make_record("Zipper", stock=1, cost_price="1.20")


@pytest.fixture
def prevalidating(runner, clock) -> CheckoutEngine:
    return CheckoutEngine(runner, clock, config=CheckoutConfig(prevalidate_cart=True))


def product(record_id, quantity=1, price="10.00"):
    return CartLine(CartLineKind.PRODUCT, "Wax", D(price), quantity, product_id=record_id)


def repair(name, *materials, price="15.00", details=None):
    return CartLine(
        CartLineKind.REPAIR, name, D(price),
        materials=tuple(MaterialRef(m, "material") for m in materials),
        details=details,
    )


def stitch(name, *materials, price="25.00", quantity=1):
    return CartLine(
        CartLineKind.STITCH_ORDER, name, D(price), quantity,
        materials=tuple(MaterialRef(m, "material") for m in materials),
    )


# =============================================================================
# Cart checkout
# =============================================================================


class TestProductCheckout:

    def test_product_sale(self, checkout, wax, stock_of, clock):
        result = checkout.checkout([product(wax, 3)], customer_id="cust-1", payment_method="card")

        invoice = result.invoice
        assert invoice.number == "INV-000001"
        assert (invoice.subtotal, invoice.tax, invoice.total) == (D("30.00"), D("2.40"), D("32.40"))
        assert invoice.tax_rate == D("0.08")
        assert invoice.deposit == D("0")
        assert invoice.amount_due == D("32.40")
        assert invoice.status == InvoiceStatus.PENDING
        assert invoice.customer_id == "cust-1"
        assert invoice.payment_method == "card"
        assert invoice.due_date == clock.now() + timedelta(days=30)

        (order,) = result.orders
        assert order.number == "O-000001"
        assert order.type == OrderType.SHIPPED
        assert order.status == OrderStatus.COMPLETED
        assert order.amount == D("30.00")
        assert order.material_cost == D("9.00")
        assert order.invoice_id == invoice.id
        assert order.delivery_date == clock.now() + timedelta(days=14)

        assert stock_of(wax) == 7
        assert result.debits == ((wax, 3),)

    def test_walk_in_customer_default(self, checkout, wax):
        result = checkout.checkout([product(wax)])
        assert result.invoice.customer_id == "walk-in"
        assert result.orders[0].customer_id == "walk-in"

    def test_tax_rate_override(self, checkout, wax):
        result = checkout.checkout([product(wax)], tax_rate="0")
        assert result.invoice.total == D("10.00")
        assert result.invoice.tax == D("0")

    def test_overpayment_is_capped(self, checkout, wax):
        result = checkout.checkout([product(wax)], amount_paid=D("50"))
        assert result.invoice.deposit == D("10.80")
        assert result.invoice.amount_due == D("0")
        assert result.invoice.status == InvoiceStatus.PAID

    def test_invoice_items_link_orders(self, checkout, wax, thread):
        cart = [product(wax), stitch("Monogram", thread)]
        result = checkout.checkout(cart)

        items = result.invoice.items
        assert [i.line_id for i in items] == [line.line_id for line in cart]
        assert [i.order_id for i in items] == [o.id for o in result.orders]
        assert result.invoice.order_ids == tuple(o.id for o in result.orders)

    def test_product_without_record_sells_untracked(self, checkout, wax, stock_of, captured_logs):
        gift_card = CartLine(CartLineKind.PRODUCT, "Gift card", D("10"), 1, product_id=uuid4())
        result = checkout.checkout([gift_card, product(wax)])

        assert result.invoice.subtotal == D("20.00")
        assert [o.material_cost for o in result.orders] == [D("0"), D("3.00")]
        assert all(o.invoice_id == result.invoice.id for o in result.orders)
        assert result.debits == ((wax, 1),)
        assert stock_of(wax) == 9
        assert any(
            r["message"] == "stock_debit_skipped_untracked"
            and r["record_id"] == str(gift_card.product_id)
            for r in captured_logs()
        )

    def test_product_without_product_id(self, checkout):
        result = checkout.checkout([CartLine(CartLineKind.PRODUCT, "Gift card", D("10"))])
        (order,) = result.orders
        assert order.type == OrderType.SHIPPED
        assert order.material_cost == D("0")
        assert result.invoice.total == D("10.80")
        assert result.debits == ()

    def test_prevalidated_product_without_record(self, prevalidating, wax, stock_of):
        result = prevalidating.checkout([product(uuid4(), 2), product(wax, 2)])
        assert [o.material_cost for o in result.orders] == [D("0"), D("6.00")]
        assert result.debits == ((wax, 2),)
        assert stock_of(wax) == 8


class TestRepairAndStitchCheckout:

    def test_repairs_consolidated_into_one_order(self, checkout, thread, zipper, clock, stock_of):
        cart = [
            repair("Hem", thread, details="trousers"),
            stitch("Patch", thread),
            repair("Zip", thread, zipper, price="20.00", details="coat"),
        ]

        result = checkout.checkout(cart)

        repair_order, stitch_order = result.orders
        assert repair_order.number == "R-000001"
        assert repair_order.type == OrderType.REPAIR
        assert repair_order.status == OrderStatus.PLACED
        assert repair_order.amount == D("35.00")
        # thread + (thread + zipper)
        assert repair_order.material_cost == D("2.20")
        assert repair_order.material_ids == (thread, zipper)
        assert repair_order.details == "Hem: trousers\n---\nZip: coat"
        assert repair_order.delivery_date == clock.now() + timedelta(days=7)
        assert [i.name for i in repair_order.items] == ["Hem", "Zip"]

        assert stitch_order.number == "O-000001"
        assert stitch_order.type == OrderType.ORDER
        assert stitch_order.status == OrderStatus.PLACED
        assert stitch_order.material_cost == D("0.50")

        by_line = {i.line_id: i.order_id for i in result.invoice.items}
        assert by_line[cart[0].line_id] == by_line[cart[2].line_id] == repair_order.id
        assert by_line[cart[1].line_id] == stitch_order.id

        assert stock_of(thread) == 2
        assert stock_of(zipper) == 0

    def test_stitch_quantity_consumes_material_per_unit(self, checkout, thread, stock_of):
        result = checkout.checkout([stitch("Patch", thread, quantity=3)])
        assert stock_of(thread) == 2
        assert result.orders[0].material_cost == D("1.50")
        assert result.invoice.subtotal == D("75.00")

    def test_repair_without_materials(self, checkout):
        result = checkout.checkout([repair("Button")])
        assert result.debits == ()
        assert result.orders[0].material_cost == D("0")
        assert result.orders[0].materials == ""


# =============================================================================
# Out of stock
# =============================================================================


class TestOutOfStock:

    def test_shared_material_second_line_fails_first_debit_kept(
        self, checkout, zipper, stock_of, captured_logs,
    ):
        cart = [repair("Zip coat", zipper), repair("Zip bag", zipper)]

        with pytest.raises(OutOfStockError) as exc_info:
            checkout.checkout(cart)

        err = exc_info.value
        assert err.item_name == "Zipper"
        assert err.user_message == '"Zipper" is out of stock.'
        assert err.committed_debits == ((str(zipper), 1),)
        assert stock_of(zipper) == 0
        assert checkout.list_invoices() == []
        assert checkout.find_unlinked_orders() == []
        assert any(r["message"] == "checkout_line_out_of_stock" for r in captured_logs())

    def test_line_with_two_materials_is_atomic(self, checkout, thread, zipper, stock_of):
        cart = [repair("Zip", thread, zipper), repair("Zip again", thread, zipper)]

        with pytest.raises(OutOfStockError) as exc_info:
            checkout.checkout(cart)

        # First line took one thread and the zipper; the second line's thread
        # debit was rolled back with its failed zipper debit.
        assert stock_of(thread) == 4
        assert stock_of(zipper) == 0
        assert len(exc_info.value.committed_debits) == 2

    def test_prevalidated_cart_touches_nothing(self, prevalidating, zipper, thread, stock_of):
        cart = [repair("Hem", thread), repair("Zip coat", zipper), repair("Zip bag", zipper)]

        with pytest.raises(OutOfStockError) as exc_info:
            prevalidating.checkout(cart)

        assert exc_info.value.committed_debits == ()
        assert exc_info.value.requested == 2
        assert stock_of(zipper) == 1
        assert stock_of(thread) == 5

    def test_prevalidated_cart_success(self, prevalidating, thread, stock_of):
        result = prevalidating.checkout([repair("Hem", thread), stitch("Patch", thread)])
        assert stock_of(thread) == 3
        assert result.debits == ((thread, 2),)
        assert [o.material_cost for o in result.orders] == [D("0.50"), D("0.50")]

    def test_missing_material_propagates(self, checkout, wax, stock_of, captured_logs):
        with pytest.raises(InventoryRecordNotFoundError):
            checkout.checkout([product(wax), repair("Zip", uuid4())])
        assert stock_of(wax) == 9
        assert any(
            r["message"] == "checkout_aborted_after_partial_debit" for r in captured_logs()
        )

    def test_prevalidated_missing_material_touches_nothing(self, prevalidating, wax, stock_of):
        missing = uuid4()
        with pytest.raises(InventoryRecordNotFoundError):
            prevalidating.checkout([product(wax), product(missing), repair("Zip", missing)])
        assert stock_of(wax) == 10


# =============================================================================
# Input validation
# =============================================================================


class TestCheckoutValidation:

    def test_empty_cart(self, checkout):
        with pytest.raises(EmptyCartError):
            checkout.checkout([])

    def test_cart_with_invoice_id(self, checkout, wax):
        with pytest.raises(InvalidCheckoutError, match="existing invoice"):
            checkout.checkout([product(wax)], invoice_id=uuid4())

    def test_negative_amount(self, checkout, wax, stock_of):
        with pytest.raises(InvalidCheckoutError):
            checkout.checkout([product(wax)], amount_paid=-5)
        assert stock_of(wax) == 10

    def test_bad_tax_rate(self, checkout, wax, stock_of):
        with pytest.raises(InvalidCheckoutError):
            checkout.checkout([product(wax)], tax_rate="2")
        assert stock_of(wax) == 10


# =============================================================================
# Payments
# =============================================================================


class TestPayInvoice:

    @pytest.fixture
    def invoice(self, checkout):
        result = checkout.checkout(
            [repair("Alteration", price="100.00")], amount_paid=D("40"), tax_rate="0",
        )
        return result.invoice

    def test_partial_then_full(self, checkout, invoice):
        assert invoice.total == D("100.00")
        assert invoice.deposit == D("40")
        assert invoice.amount_due == D("60")
        assert invoice.status == InvoiceStatus.PARTIALLY_PAID

        paid = checkout.pay_invoice(invoice.id, D("60"), payment_method="cash")

        assert paid.deposit == D("100")
        assert paid.amount_due == D("0")
        assert paid.status == InvoiceStatus.PAID
        assert paid.payment_method == "cash"
        assert paid.version == invoice.version + 1

    def test_checkout_with_invoice_id_pays(self, checkout, invoice, stock_of):
        result = checkout.checkout(invoice_id=invoice.id, amount_paid="10")
        assert result.orders == ()
        assert result.debits == ()
        assert result.invoice.deposit == D("50")
        assert result.invoice.status == InvoiceStatus.PARTIALLY_PAID

    def test_excess_payment_not_kept(self, checkout, invoice, captured_logs):
        paid = checkout.pay_invoice(invoice.id, "75")
        assert paid.deposit == D("100")
        record = [r for r in captured_logs() if r["message"] == "invoice_payment_recorded"][0]
        assert D(record["credited"]) == D("60")
        assert D(record["unapplied"]) == D("15")

    def test_paid_invoice_rejects_payment(self, checkout, invoice):
        checkout.pay_invoice(invoice.id, "60")
        with pytest.raises(InvalidStateError):
            checkout.pay_invoice(invoice.id, "1")

    def test_zero_payment_rejected(self, checkout, invoice):
        with pytest.raises(InvalidCheckoutError):
            checkout.pay_invoice(invoice.id, 0)

    def test_missing_invoice(self, checkout):
        with pytest.raises(InvoiceNotFoundError):
            checkout.pay_invoice(uuid4(), "10")

    def test_payment_does_not_touch_stock(self, checkout, thread, stock_of):
        result = checkout.checkout([repair("Hem", thread)])
        checkout.pay_invoice(result.invoice.id, result.invoice.amount_due)
        assert stock_of(thread) == 4

    def test_list_invoices(self, checkout, invoice, wax):
        other = checkout.checkout([product(wax)], customer_id="cust-2").invoice
        assert [i.id for i in checkout.list_invoices()] == [invoice.id, other.id]
        assert [i.id for i in checkout.list_invoices(customer_id="cust-2")] == [other.id]
        assert [i.id for i in checkout.list_invoices(status="partially_paid")] == [invoice.id]


# =============================================================================
# Saga recovery
# =============================================================================


class TestSagaRecovery:

    def test_invoice_step_failure(self, checkout, wax, stock_of, monkeypatch):
        def fail(*args, **kwargs):
            raise RuntimeError("invoice store unavailable")

        monkeypatch.setattr(checkout, "_create_invoice", fail)

        with pytest.raises(CheckoutIncompleteError) as exc_info:
            checkout.checkout([product(wax)])

        err = exc_info.value
        assert err.stage == "invoice"
        assert err.invoice_id is None
        assert isinstance(err.__cause__, RuntimeError)
        unlinked = checkout.find_unlinked_orders()
        assert [str(o.id) for o in unlinked] == list(err.order_ids)
        assert stock_of(wax) == 9

    def test_link_step_failure_then_relink(self, checkout, wax, thread, monkeypatch):
        def fail(invoice_id):
            raise RuntimeError("link failed")

        monkeypatch.setattr(checkout, "relink_orders", fail)
        with pytest.raises(CheckoutIncompleteError) as exc_info:
            checkout.checkout([product(wax), repair("Hem", thread)])
        monkeypatch.undo()

        err = exc_info.value
        assert err.stage == "link"
        assert len(err.order_ids) == 2
        assert len(checkout.find_unlinked_orders()) == 2

        result = checkout.relink_orders(err.invoice_id)
        assert sorted(str(o) for o in result.linked) == sorted(err.order_ids)
        assert checkout.find_unlinked_orders() == []
        for order_id in result.linked:
            assert str(checkout.get_order(order_id).invoice_id) == err.invoice_id

    def test_relink_is_idempotent(self, checkout, wax):
        result = checkout.checkout([product(wax)])
        again = checkout.relink_orders(result.invoice.id)
        assert again.linked == ()
        assert again.already_linked == (result.orders[0].id,)
        assert checkout.get_order(result.orders[0].id).version == result.orders[0].version

    def test_relink_reports_order_of_other_invoice(
        self, checkout, wax, session_factory, captured_logs,
    ):
        first = checkout.checkout([product(wax)])
        second = checkout.checkout([product(wax)])
        stolen = first.orders[0].id
        with session_factory() as s:
            s.execute(
                update(InvoiceItemModel)
                .where(InvoiceItemModel.invoice_id == second.invoice.id)
                .values(order_id=stolen)
            )
            s.commit()

        result = checkout.relink_orders(second.invoice.id)

        assert result.conflicting == (stolen,)
        assert checkout.get_order(stolen).invoice_id == first.invoice.id
        assert any(r["message"] == "order_linked_to_other_invoice" for r in captured_logs())

    def test_relink_missing_invoice(self, checkout):
        with pytest.raises(InvoiceNotFoundError):
            checkout.relink_orders(uuid4())

    def test_get_order_missing(self, checkout):
        with pytest.raises(OrderNotFoundError):
            checkout.get_order(uuid4())


# =============================================================================
# Concurrency
# =============================================================================


class TestCheckoutConcurrency:

    def test_concurrent_stock_write_is_retried(
        self, checkout, wax, stock_of, inject_conflict, sleeps,
    ):
        fired = inject_conflict(wax, stock_delta=-4)

        result = checkout.checkout([product(wax, 5)])

        assert fired == [wax]
        assert sleeps == [0.01]
        assert stock_of(wax) == 1
        assert result.invoice.status == InvoiceStatus.PENDING

    def test_conflict_that_empties_stock_surfaces_out_of_stock(
        self, checkout, zipper, stock_of, inject_conflict,
    ):
        inject_conflict(zipper, stock_delta=-1)

        with pytest.raises(OutOfStockError):
            checkout.checkout([repair("Zip", zipper)])
        assert stock_of(zipper) == 0
