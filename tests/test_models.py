"""
Tests for ledger records, derived helpers and transition tables.
"""

import re
from decimal import Decimal

import pytest

from poolpal.faults import InvalidTransitionError, ValidationError
from poolpal.ledger import (
    ORDER_TRANSITIONS,
    PAYMENT_TRANSITIONS,
    Order,
    OrderItem,
    OrderStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    calculate_order_total,
    generate_order_number,
    generate_reference_code,
)
from poolpal.ledger.helpers import generate_id
from poolpal.ledger.models import normalize_payment_method, parse_order_status, to_money
from poolpal.ledger.transitions import (
    ensure_order_transition,
    ensure_payment_transition,
    is_terminal_order_status,
    is_terminal_payment_status,
)

from tests.conftest import make_item, pool_items


# ============================================================================
# Items & Totals
# ============================================================================


class TestOrderItems:

    def test_coerce_mapping(self):
        item = OrderItem.coerce(make_item(price="9.99", quantity=3, imageUrl="/img/tabs.png"))
        assert item.product_id == "tabs"
        assert item.price == Decimal("9.99")
        assert item.quantity == 3
        assert item.image_url == "/img/tabs.png"

    def test_coerce_accepts_product_id_key(self):
        item = OrderItem.coerce({"productId": "net", "name": "Leaf net", "price": 5})
        assert item.product_id == "net"
        assert item.quantity == 1

    def test_quantity_string(self):
        assert OrderItem.coerce(make_item(quantity="4")).quantity == 4

    @pytest.mark.parametrize("bad", [
        {"name": "No id", "price": "1"},
        {"id": "x", "name": "", "price": "1"},
        {"id": "x", "name": "Neg", "price": "-1"},
        {"id": "x", "name": "Zero qty", "price": "1", "quantity": 0},
        {"id": "x", "name": "Word qty", "price": "1", "quantity": "two"},
        {"id": "x", "name": "Bad price", "price": "ten"},
    ])
    def test_invalid_items(self, bad):
        with pytest.raises(ValidationError):
            OrderItem.coerce(bad)

    def test_non_mapping(self):
        with pytest.raises(ValidationError):
            OrderItem.coerce("tabs")

    def test_line_total(self):
        assert OrderItem.coerce(make_item(price="2.50", quantity=4)).line_total == Decimal("10.00")


class TestCalculateOrderTotal:

    def test_sum_of_lines(self):
        assert calculate_order_total(pool_items()) == Decimal("25.00")

    def test_empty(self):
        assert calculate_order_total([]) == Decimal("0")

    def test_decimal_exactness(self):
        items = [make_item("a", "A", "0.10", 3), make_item("b", "B", "0.20", 1)]
        assert calculate_order_total(items) == Decimal("0.50")

    def test_accepts_order_items(self):
        items = [OrderItem("a", "A", Decimal("1.25"), 2)]
        assert calculate_order_total(items) == Decimal("2.50")


class TestGenerators:

    def test_order_number_shape(self):
        assert re.fullmatch(r"ORD-\d+-\d{1,3}", generate_order_number())

    def test_reference_code_shape(self):
        assert re.fullmatch(r"PAY-\d+-\d{3}", generate_reference_code())

    def test_ids_are_prefixed_and_distinct(self):
        ids = {generate_id("order") for _ in range(50)}
        assert len(ids) == 50
        assert all(i.startswith("order_") for i in ids)


# ============================================================================
# Coercion
# ============================================================================


class TestCoercion:

    def test_to_money(self):
        assert to_money("25.00", field_name="amount") == Decimal("25.00")
        assert to_money(3, field_name="amount") == Decimal("3")

    @pytest.mark.parametrize("bad", [None, "abc", True, "NaN", "Infinity"])
    def test_to_money_rejects(self, bad):
        with pytest.raises(ValidationError):
            to_money(bad, field_name="amount")

    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            parse_order_status("lost")

    def test_payment_method_normalized(self):
        assert normalize_payment_method("Credit Card") == "credit_card"
        assert normalize_payment_method(PaymentMethod.PAYPAL) == "paypal"
        assert normalize_payment_method("Pool voucher") == "Pool voucher"

    def test_blank_payment_method(self):
        with pytest.raises(ValidationError):
            normalize_payment_method("  ")


# ============================================================================
# Documents
# ============================================================================


class TestDocuments:

    def test_order_document_is_camel_case(self):
        order = Order(id="order_1", order_number="ORD-1-1",
                      items=[OrderItem.coerce(i) for i in pool_items()],
                      shipping_address="12 Pool Lane", total=Decimal("25.00"))
        doc = order.to_document()
        assert doc["orderNumber"] == "ORD-1-1"
        assert doc["isPaid"] is False
        assert doc["total"] == "25.00"
        assert doc["status"] == "pending"
        assert Order.from_document(doc) == order

    def test_payment_document_round_trip(self):
        payment = Payment(id="payment_1", order_id="order_1", amount=Decimal("25.00"),
                          reference_code="PAY-1-001", payment_method="cash",
                          status=PaymentStatus.COMPLETED)
        doc = payment.to_document()
        assert doc["orderId"] == "order_1"
        assert doc["completedAt"] is None
        assert Payment.from_document(doc) == payment


# ============================================================================
# Transition Tables
# ============================================================================


class TestTransitionTables:

    def test_every_status_has_a_row(self):
        assert set(ORDER_TRANSITIONS) == set(OrderStatus)
        assert set(PAYMENT_TRANSITIONS) == set(PaymentStatus)

    @pytest.mark.parametrize("status", [OrderStatus.CANCELLED, OrderStatus.REFUNDED, OrderStatus.RETURNED])
    def test_terminal_order_statuses(self, status):
        assert is_terminal_order_status(status)

    def test_refunded_payment_is_terminal(self):
        assert is_terminal_payment_status(PaymentStatus.REFUNDED)
        assert not is_terminal_payment_status(PaymentStatus.CANCELLED)

    def test_failed_payment_cannot_go_to_processing(self):
        with pytest.raises(InvalidTransitionError):
            ensure_payment_transition(PaymentStatus.FAILED, PaymentStatus.PROCESSING)

    def test_order_shipped_to_returned(self):
        ensure_order_transition(OrderStatus.SHIPPED, OrderStatus.RETURNED)

    def test_rejection_lists_allowed(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            ensure_order_transition(OrderStatus.PENDING, OrderStatus.SHIPPED)
        assert exc_info.value.allowed == ("cancelled", "processing")
        assert exc_info.value.current == "pending"
        assert exc_info.value.requested == "shipped"

    def test_self_transitions_rejected(self):
        for status in PaymentStatus:
            with pytest.raises(InvalidTransitionError):
                ensure_payment_transition(status, status)
