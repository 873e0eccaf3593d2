"""Tests for checkout value objects and pure helpers."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from workshop_kernel.exceptions import (
    EmptyCartError,
    InvalidCheckoutError,
    InvalidQuantityError,
)
from workshop_modules.checkout.config import CheckoutConfig
from workshop_modules.checkout.helpers import (
    aggregate_requirements,
    apply_payment,
    compute_invoice_totals,
    derive_invoice_status,
    initial_deposit,
    is_overdue,
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
    InvoiceInfo,
    InvoiceItemInfo,
    InvoiceStatus,
    MaterialRef,
)

D = Decimal


def _product(price="10.00", quantity=1, product_id=None):
    return CartLine(CartLineKind.PRODUCT, "Wax", D(price), quantity, product_id or uuid4())


def _repair(name="Hem", price="15.00", materials=(), details=None):
    return CartLine(CartLineKind.REPAIR, name, D(price), materials=materials, details=details)


def _invoice(total="100", deposit="0", status=InvoiceStatus.PENDING, due=None, items=()):
    now = datetime(2024, 6, 1, tzinfo=UTC)
    return InvoiceInfo(
        id=uuid4(), number="INV-000001", customer_id="walk-in",
        date=now, due_date=due or now + timedelta(days=30), status=status,
        subtotal=D(total), tax_rate=D("0"), tax=D("0"), total=D(total),
        deposit=D(deposit), payment_method=None, items=items, version=1,
    )


# =============================================================================
# CartLine
# =============================================================================


class TestCartLine:

    def test_kind_coerced_from_string(self):
        line = CartLine("stitch_order", "Monogram", "25", materials=[MaterialRef(uuid4(), "Floss")])
        assert line.kind is CartLineKind.STITCH_ORDER
        assert line.price == D("25")
        assert isinstance(line.materials, tuple)

    def test_unknown_kind(self):
        with pytest.raises(InvalidCheckoutError, match="unknown line kind"):
            CartLine("gift_card", "Card", D("5"))

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, True])
    def test_quantity(self, quantity):
        with pytest.raises(InvalidQuantityError):
            CartLine(CartLineKind.REPAIR, "Hem", D("5"), quantity)

    @pytest.mark.parametrize("price", ["-0.01", "ten"])
    def test_price(self, price):
        with pytest.raises(InvalidCheckoutError):
            CartLine(CartLineKind.REPAIR, "Hem", price)

    def test_product_without_product_id_takes_no_stock(self):
        line = CartLine(CartLineKind.PRODUCT, "Gift card", D("5"))
        assert line.product_id is None
        assert line.requirements == ()

    def test_requirements(self):
        pid, m1, m2 = uuid4(), uuid4(), uuid4()
        assert _product(quantity=3, product_id=pid).requirements == ((pid, 3),)
        stitch = CartLine(
            CartLineKind.STITCH_ORDER, "Patch", D("20"), 2,
            materials=(MaterialRef(m1, "Floss"), MaterialRef(m2, "Backing")),
        )
        assert stitch.requirements == ((m1, 2), (m2, 2))
        assert _repair().requirements == ()

    def test_line_ids_unique_by_default(self):
        assert _repair().line_id != _repair().line_id


# =============================================================================
# Validation
# =============================================================================


class TestValidation:

    @pytest.mark.parametrize("cart", [None, []])
    def test_empty_cart(self, cart):
        with pytest.raises(EmptyCartError):
            validate_cart(cart)

    def test_duplicate_line_ids(self):
        line = _repair()
        with pytest.raises(InvalidCheckoutError, match="distinct line ids"):
            validate_cart([line, line])

    def test_tax_rate(self):
        assert validate_tax_rate("0.2") == D("0.2")
        assert validate_tax_rate(0) == D("0")
        for bad in ("1.01", "-0.1", "x"):
            with pytest.raises(InvalidCheckoutError):
                validate_tax_rate(bad)

    def test_amount(self):
        assert validate_amount(0) == D("0")
        assert validate_amount("12.5") == D("12.5")
        with pytest.raises(InvalidCheckoutError, match="negative"):
            validate_amount(-1)
        with pytest.raises(InvalidCheckoutError, match="zero or negative"):
            validate_amount(0, allow_zero=False)


# =============================================================================
# Invoice arithmetic
# =============================================================================


class TestInvoiceArithmetic:

    def test_totals(self):
        totals = compute_invoice_totals([_product("10.00", 3)], D("0.08"))
        assert (totals.subtotal, totals.tax, totals.total) == (D("30.00"), D("2.40"), D("32.40"))

    def test_tax_rounds_half_up(self):
        # 0.0625 * 10.00 = 0.625
        totals = compute_invoice_totals([_product("10.00")], D("0.0625"))
        assert totals.tax == D("0.63")
        assert totals.total == D("10.63")

    def test_subtotal_is_sum_of_rounded_lines(self):
        lines = [_product("0.333", 3), _product("0.335")]
        assert line_total(lines[0]) == D("1.00")
        assert line_total(lines[1]) == D("0.34")
        assert compute_invoice_totals(lines, D("0")).subtotal == D("1.34")

    @pytest.mark.parametrize(
        "total, deposit, expected",
        [
            ("100", "0", InvoiceStatus.PENDING),
            ("100", "40", InvoiceStatus.PARTIALLY_PAID),
            ("100", "100", InvoiceStatus.PAID),
            ("0", "0", InvoiceStatus.PAID),
        ],
    )
    def test_derive_status(self, total, deposit, expected):
        assert derive_invoice_status(D(total), D(deposit)) == expected

    def test_initial_deposit_capped(self):
        assert initial_deposit(D("32.40"), D("50")) == D("32.40")
        assert initial_deposit(D("32.40"), D("10")) == D("10.00")

    def test_apply_payment(self):
        assert apply_payment(D("100"), D("40"), D("60")) == (D("100"), D("60"))
        assert apply_payment(D("100"), D("40"), D("75")) == (D("100"), D("60"))
        assert apply_payment(D("100"), D("0"), D("25.555")) == (D("25.56"), D("25.56"))

    def test_amount_due(self):
        invoice = _invoice(total="100", deposit="40", status=InvoiceStatus.PARTIALLY_PAID)
        assert invoice.amount_due == D("60")

    def test_is_overdue(self):
        due = datetime(2024, 7, 1, tzinfo=UTC)
        invoice = _invoice(due=due)
        assert not is_overdue(invoice, due)
        assert is_overdue(invoice, due + timedelta(seconds=1))
        paid = _invoice(deposit="100", status=InvoiceStatus.PAID, due=due)
        assert not is_overdue(paid, due + timedelta(days=10))

    def test_order_ids_distinct_in_item_order(self):
        o1, o2 = uuid4(), uuid4()
        items = tuple(
            InvoiceItemInfo(uuid4(), order_id, "x", 1, D("1"), D("1"))
            for order_id in (o2, o1, o2, None)
        )
        assert _invoice(items=items).order_ids == (o2, o1)


# =============================================================================
# Cart shaping
# =============================================================================


class TestCartShaping:

    def test_partition_keeps_order(self):
        r1, p, r2 = _repair("Hem"), _product(), _repair("Zip")
        repairs, others = partition_cart([r1, p, r2])
        assert repairs == [r1, r2]
        assert others == [p]

    def test_aggregate_requirements(self):
        thread = MaterialRef(uuid4(), "Thread")
        pid = uuid4()
        lines = [
            _repair(materials=(thread,)),
            _repair(materials=(thread,)),
            _product(quantity=2, product_id=pid),
        ]
        assert aggregate_requirements(lines) == {thread.id: 2, pid: 2}

    def test_unique_materials(self):
        thread, zip_ = MaterialRef(uuid4(), "Thread"), MaterialRef(uuid4(), "Zipper")
        ids, names = unique_materials(
            [_repair(materials=(thread,)), _repair(materials=(zip_, thread))]
        )
        assert ids == [thread.id, zip_.id]
        assert names == ["Thread", "Zipper"]

    def test_repair_details(self):
        lines = [
            _repair("Hem", details="trousers 2cm"),
            _repair("Button"),
            _repair("Zip", details="coat"),
        ]
        assert repair_details(lines) == "Hem: trousers 2cm\n---\nZip: coat"
        assert repair_details([_repair()]) is None


class TestCheckoutConfig:

    def test_defaults(self):
        config = CheckoutConfig()
        assert config.default_tax_rate == D("0.08")
        assert config.prevalidate_cart is False
        assert (config.repair_delivery_days, config.order_delivery_days) == (7, 14)

    def test_rate_coerced(self):
        assert CheckoutConfig(default_tax_rate="0.2").default_tax_rate == D("0.2")

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"default_tax_rate": D("1.5")},
            {"walk_in_customer_id": ""},
            {"invoice_due_days": -1},
            {"repair_delivery_days": 2.5},
        ],
    )
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            CheckoutConfig(**kwargs)
