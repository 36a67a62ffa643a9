from datetime import date, datetime, timedelta, timezone

import pytest

from domain.common.exceptions import InvalidStateError, ValidationError
from domain.order.entity import (
    CouponSnapshot,
    CouponType,
    Order,
    OrderItem,
    OrderPaymentStatus,
    OrderStatus,
    generate_order_number,
)


NOW = datetime(2024, 5, 10, 9, 0, tzinfo=timezone.utc)


def _order(address, coupon=None, shipping_cost=0) -> Order:
    return Order.place(
        order_number="ORD-240510-0001",
        user_id=7,
        items=[
            OrderItem(product_id=1, name="Tea", price=100000, quantity=2, discount=10),
            OrderItem(product_id=2, name="Cup", price=50000, quantity=1),
        ],
        shipping_address=address,
        shipping_cost=shipping_cost,
        coupon=coupon,
        now=NOW,
    )


def test_order_number_format():
    assert generate_order_number(date(2024, 5, 10), 7) == "ORD-240510-0007"


def test_totals_apply_item_discounts_then_coupon(address):
    coupon = CouponSnapshot(code="SPRING10", discount=10, type=CouponType.PERCENTAGE)
    order = _order(address, coupon=coupon, shipping_cost=50000)
    assert order.subtotal == 250000
    item_discount = 20000
    coupon_discount = (250000 - item_discount) // 10
    assert order.total_discount == item_discount + coupon_discount
    assert order.total_amount == 250000 - item_discount - coupon_discount + 50000


def test_fixed_coupon_is_capped_at_amount(address):
    coupon = CouponSnapshot(code="BIGFIXED", discount=10_000_000, type=CouponType.FIXED)
    order = _order(address, coupon=coupon)
    assert order.total_amount == 0


def test_empty_order_is_rejected(address):
    with pytest.raises(ValidationError):
        Order.place(order_number="X", user_id=1, items=[], shipping_address=address)


def test_status_history_starts_with_creation(address):
    order = _order(address)
    assert [c.status for c in order.status_history] == [OrderStatus.PENDING]


def test_fulfillment_transitions(address):
    order = _order(address)
    for status in (OrderStatus.PROCESSING, OrderStatus.PACKAGED, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
        order.update_status(status, actor_id=1, now=NOW)
    assert order.delivered_at == NOW
    assert len(order.status_history) == 5


def test_illegal_transition_raises(address):
    order = _order(address)
    with pytest.raises(InvalidStateError):
        order.update_status(OrderStatus.SHIPPED)


def test_cancel_only_before_fulfillment(address):
    order = _order(address)
    order.update_status(OrderStatus.PROCESSING)
    order.update_status(OrderStatus.PACKAGED)
    with pytest.raises(InvalidStateError):
        order.cancel("changed my mind")


def test_cancel_records_reason(address):
    order = _order(address)
    order.cancel("changed my mind", actor_id=7, now=NOW)
    assert order.status == OrderStatus.CANCELLED
    assert order.cancel_reason == "changed my mind"
    assert order.cancelled_at == NOW


def test_return_window(address):
    order = _order(address)
    for status in (OrderStatus.PROCESSING, OrderStatus.PACKAGED, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
        order.update_status(status, now=NOW)
    with pytest.raises(ValidationError):
        order.return_order("late", now=NOW + timedelta(days=8))
    order.return_order("broken", now=NOW + timedelta(days=7))
    assert order.status == OrderStatus.RETURNED


def test_mark_paid_moves_pending_order_to_processing_once(address):
    order = _order(address)
    assert order.mark_paid("TX-1", NOW) is True
    assert order.status == OrderStatus.PROCESSING
    assert order.payment_status == OrderPaymentStatus.COMPLETED
    assert order.mark_paid("TX-1", NOW) is False


def test_inventory_flags(address):
    order = _order(address)
    assert order.mark_inventory_restored() is False
    order.mark_inventory_committed()
    with pytest.raises(InvalidStateError):
        order.mark_inventory_committed()
    assert order.mark_inventory_restored() is True
    assert order.mark_inventory_restored() is False


def test_stock_deltas_merge_duplicate_products(address):
    order = Order.place(
        order_number="X",
        user_id=1,
        items=[
            OrderItem(product_id=1, name="Tea", price=1000, quantity=2),
            OrderItem(product_id=1, name="Tea", price=1000, quantity=3),
        ],
        shipping_address=address,
    )
    assert order.stock_deltas() == {1: 5}
