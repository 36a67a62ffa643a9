from datetime import datetime, timedelta, timezone

import pytest

from domain.cart.entity import Cart, Coupon
from domain.catalog.entity import Product, StockLevel
from domain.common.exceptions import (
    CartItemNotFoundError,
    CouponInvalidError,
    InsufficientStockError,
    ProductNotFoundError,
    ValidationError,
)
from domain.order.entity import CouponType


NOW = datetime(2024, 5, 10, tzinfo=timezone.utc)


def _product(pid=1, price=100000, stock=5, discount=0) -> Product:
    return Product(id=pid, name=f"P{pid}", price=price, discount=discount, stock=StockLevel(quantity=stock))


def _coupon(**overrides) -> Coupon:
    values = dict(
        id=1,
        code="save20",
        type=CouponType.PERCENTAGE,
        discount=20,
        valid_from=NOW - timedelta(days=1),
        valid_until=NOW + timedelta(days=1),
    )
    values.update(overrides)
    return Coupon(**values)


def test_adding_same_product_merges_quantity():
    cart = Cart(user_id=7)
    cart.add_item(_product(), 2)
    cart.add_item(_product(), 3)
    assert len(cart.items) == 1
    assert cart.items[0].quantity == 5
    assert cart.expires_at is not None


def test_add_beyond_stock_counts_existing_quantity():
    cart = Cart(user_id=7)
    cart.add_item(_product(stock=5), 4)
    with pytest.raises(InsufficientStockError) as exc:
        cart.add_item(_product(stock=5), 2)
    assert exc.value.shortages[0]["requested"] == 6


def test_update_and_remove_unknown_item():
    cart = Cart(user_id=7)
    with pytest.raises(CartItemNotFoundError):
        cart.update_item(_product(), 1)
    with pytest.raises(CartItemNotFoundError):
        cart.remove_item(1)


def test_zero_quantity_is_rejected():
    with pytest.raises(ValidationError):
        Cart(user_id=7).add_item(_product(), 0)


def test_totals_with_item_discount_and_coupon():
    cart = Cart(user_id=7)
    cart.add_item(_product(price=100000, discount=10), 2)
    cart.apply_coupon(_coupon(), NOW)
    totals = cart.totals()
    assert totals.total_items == 2
    assert totals.subtotal == 200000
    assert totals.item_discount == 20000
    assert totals.coupon_discount == 36000
    assert totals.total == 144000


def test_coupon_code_is_normalised():
    assert _coupon(code="  save20 ").code == "SAVE20"


@pytest.mark.parametrize("overrides,reason", [
    ({"is_active": False}, "not active"),
    ({"valid_until": NOW - timedelta(hours=1), "valid_from": NOW - timedelta(days=2)}, "not active"),
    ({"usage_limit": 3, "used_count": 3}, "usage limit"),
    ({"minimum_amount": 10_000_000}, "minimum purchase"),
])
def test_coupon_rejections(overrides, reason):
    cart = Cart(user_id=7)
    cart.add_item(_product(), 1)
    with pytest.raises(CouponInvalidError) as exc:
        cart.apply_coupon(_coupon(**overrides), NOW)
    assert reason in exc.value.details["reason"]


def test_clear_drops_items_and_coupon():
    cart = Cart(user_id=7)
    cart.add_item(_product(), 1)
    cart.apply_coupon(_coupon(), NOW)
    cart.clear()
    assert cart.is_empty
    assert cart.coupon is None


def test_refresh_syncs_prices_and_trims_stock():
    cart = Cart(user_id=7)
    cart.add_item(_product(1, stock=10), 4)
    cart.add_item(_product(2, stock=10), 1)
    changed = cart.refresh({1: _product(1, price=120000, stock=3)})
    assert changed is True
    assert [i.product_id for i in cart.items] == [1]
    assert cart.items[0].quantity == 3
    assert cart.items[0].price == 120000


def test_to_order_items_uses_current_catalog_price():
    cart = Cart(user_id=7)
    cart.add_item(_product(price=100000), 2)
    items = cart.to_order_items({1: _product(price=90000, discount=5)})
    assert items[0].price == 90000
    assert items[0].discount == 5
    assert items[0].quantity == 2


def test_to_order_items_requires_products():
    cart = Cart(user_id=7)
    with pytest.raises(ValidationError):
        cart.to_order_items({})
    cart.add_item(_product(), 1)
    with pytest.raises(ProductNotFoundError):
        cart.to_order_items({})
