from datetime import datetime, timedelta, timezone

import pytest

from application.services.order_service import OrderService
from application.services.payment_service import PaymentService
from application.services.refund_service import RefundWorkflow
from core.config import StoreSettings
from domain.cart.entity import Cart, Coupon
from domain.common.exceptions import (
    CouponInvalidError,
    InsufficientStockError,
    InvalidStateError,
    OrderNotFoundError,
    RefundNotAllowedError,
    ValidationError,
)
from domain.order.entity import CouponType, OrderPaymentStatus, OrderStatus, ShippingMethod
from domain.payment.entity import Payment, PaymentStatus


@pytest.fixture
def refunds(uow_factory, scheduler, payment_config):
    return RefundWorkflow(uow_factory, scheduler, config=payment_config)


@pytest.fixture
def orders(uow_factory, refunds):
    return OrderService(uow_factory, refunds, store=StoreSettings())


@pytest.fixture
def payments(uow_factory, gateway, scheduler, payment_config):
    return PaymentService(uow_factory, gateway, scheduler, config=payment_config)


async def _fill_cart(uow_factory, user_id, *lines):
    async with uow_factory() as uow:
        cart = Cart(user_id=user_id)
        for product, qty in lines:
            cart.add_item(product, qty)
        await uow.cart_repository.save(cart)


async def _pay(payments, order):
    started = await payments.initiate_payment(order.id, order.user_id)
    return await payments.verify_payment(started.reference_id, started.authority, "OK")


@pytest.mark.asyncio
async def test_place_order_freezes_cart_and_takes_stock(orders, uow_factory, seed, address):
    tea = await seed.product("Tea", price=100000, stock=10, discount=10)
    cup = await seed.product("Cup", price=50000, stock=3)
    await _fill_cart(uow_factory, 7, (tea, 2), (cup, 1))

    order = await orders.place_order(7, address, ShippingMethod.NORMAL)

    assert order.id is not None
    assert order.order_number.startswith("ORD-")
    assert order.order_number.endswith("-0001")
    assert order.status == OrderStatus.PENDING
    assert order.inventory_committed is True
    assert order.shipping_cost == 50000
    assert order.total_amount == 180000 + 50000 + 50000
    assert await seed.stock_of(tea.id) == 8
    assert await seed.stock_of(cup.id) == 2


@pytest.mark.asyncio
async def test_order_numbers_increase_per_day(orders, uow_factory, seed, address):
    tea = await seed.product(stock=10)
    numbers = []
    for _ in range(2):
        await _fill_cart(uow_factory, 7, (tea, 1))
        numbers.append((await orders.place_order(7, address)).order_number)
    assert [n[-4:] for n in numbers] == ["0001", "0002"]


@pytest.mark.asyncio
async def test_normal_shipping_free_above_threshold(orders, uow_factory, seed, address):
    tv = await seed.product("TV", price=600000, stock=2)
    await _fill_cart(uow_factory, 7, (tv, 1))
    order = await orders.place_order(7, address, "normal")
    assert order.shipping_cost == 0

    await _fill_cart(uow_factory, 7, (tv, 1))
    express = await orders.place_order(7, address, "express")
    assert express.shipping_cost == 100000


@pytest.mark.asyncio
async def test_empty_cart_cannot_be_ordered(orders, address):
    with pytest.raises(ValidationError):
        await orders.place_order(7, address)


@pytest.mark.asyncio
async def test_stock_shortage_aborts_the_whole_order(orders, uow_factory, seed, address):
    a = await seed.product("A", stock=10)
    b = await seed.product("B", stock=5)
    await _fill_cart(uow_factory, 7, (a, 3), (b, 5))
    async with uow_factory() as uow:
        await uow.product_repository.try_decrement_stock(b.id, 4)

    with pytest.raises(InsufficientStockError):
        await orders.place_order(7, address)

    assert await seed.stock_of(a.id) == 10
    async with uow_factory(readonly=True) as uow:
        assert await uow.order_repository.count_by_user(7) == 0


@pytest.mark.asyncio
async def test_coupon_is_applied_and_counted(orders, uow_factory, seed, address):
    now = datetime.now(timezone.utc)
    tea = await seed.product(price=100000, stock=10)
    async with uow_factory() as uow:
        coupon = await uow.coupon_repository.create(Coupon(
            id=None, code="WELCOME", type=CouponType.FIXED, discount=20000,
            valid_from=now - timedelta(days=1), valid_until=now + timedelta(days=1), usage_limit=1,
        ))
        cart = Cart(user_id=7)
        cart.add_item(tea, 1)
        cart.apply_coupon(coupon, now)
        await uow.cart_repository.save(cart)

    order = await orders.place_order(7, address)
    assert order.coupon.code == "WELCOME"
    assert order.total_discount == 20000

    async with uow_factory(readonly=True) as uow:
        assert (await uow.coupon_repository.get_by_code("welcome")).used_count == 1

    # usage limit reached for the next checkout
    async with uow_factory() as uow:
        cart = await uow.cart_repository.get_by_user(7)
        cart.add_item(tea, 1)
        cart.coupon = coupon.snapshot()
        await uow.cart_repository.save(cart)
    with pytest.raises(CouponInvalidError):
        await orders.place_order(7, address)


@pytest.mark.asyncio
async def test_cancel_unpaid_order_restores_stock_and_cancels_pending_payment(
    orders, payments, uow_factory, seed, gateway
):
    tea = await seed.product(stock=10)
    order = await seed.order(7, {tea.id: 4})
    async with uow_factory() as uow:
        pending = await uow.payment_repository.create(Payment.create(order.id, 7, order.total_amount, "zarinpal"))

    cancelled = await orders.cancel_order(order.id, actor_id=7, reason="changed my mind", owner_id=7)

    assert cancelled.status == OrderStatus.CANCELLED
    assert cancelled.inventory_restored is True
    assert await seed.stock_of(tea.id) == 10
    assert (await payments.get_payment(pending.id)).status == PaymentStatus.CANCELLED


@pytest.mark.asyncio
async def test_cancel_paid_order_runs_refund_workflow(orders, payments, seed):
    tea = await seed.product(stock=10)
    order = await seed.order(7, {tea.id: 2})
    result = await _pay(payments, order)
    assert result.success

    cancelled = await orders.cancel_order(order.id, actor_id=7, reason="too slow", owner_id=7)

    assert cancelled.status == OrderStatus.CANCELLED
    assert cancelled.payment_status == OrderPaymentStatus.REFUNDED
    assert await seed.stock_of(tea.id) == 10
    payment = (await payments.payments_for_order(order.id, 7))[0]
    assert payment.status == PaymentStatus.REFUNDED
    assert payment.refund.amount == order.total_amount


@pytest.mark.asyncio
async def test_cancel_after_packaging_is_rejected(orders, payments, seed):
    tea = await seed.product(stock=10)
    order = await seed.order(7, {tea.id: 1})
    await _pay(payments, order)
    await orders.update_status(order.id, OrderStatus.PACKAGED, actor_id=1)

    with pytest.raises(InvalidStateError):
        await orders.cancel_order(order.id, actor_id=7, owner_id=7)
    assert await seed.stock_of(tea.id) == 9


@pytest.mark.asyncio
async def test_other_users_cannot_see_or_cancel_order(orders, seed):
    tea = await seed.product(stock=10)
    order = await seed.order(7, {tea.id: 1})
    with pytest.raises(OrderNotFoundError):
        await orders.get_order(order.id, owner_id=8)
    with pytest.raises(OrderNotFoundError):
        await orders.cancel_order(order.id, actor_id=8, owner_id=8)


@pytest.mark.asyncio
async def test_return_delivered_order_refunds_and_restocks(orders, payments, seed):
    tea = await seed.product(stock=10)
    order = await seed.order(7, {tea.id: 3})
    await _pay(payments, order)
    for status in (OrderStatus.PACKAGED, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
        await orders.update_status(order.id, status, actor_id=1)

    returned = await orders.return_order(order.id, actor_id=7, reason="broken", owner_id=7)

    assert returned.status == OrderStatus.RETURNED
    assert returned.payment_status == OrderPaymentStatus.REFUNDED
    assert await seed.stock_of(tea.id) == 10


@pytest.mark.asyncio
async def test_list_orders_paginates_newest_first(orders, seed):
    tea = await seed.product(stock=10)
    placed = [await seed.order(7, {tea.id: 1}) for _ in range(3)]
    await seed.order(8, {tea.id: 1})

    items, total = await orders.list_orders(7, page=1, size=2)
    assert total == 3
    assert [o.id for o in items] == [placed[2].id, placed[1].id]


@pytest.mark.asyncio
async def test_cancel_outside_refund_window_leaves_order_untouched(orders, payments, seed):
    tea = await seed.product(stock=10)
    order = await seed.order(7, {tea.id: 2})
    await _pay(payments, order)
    before = await orders.get_order(order.id)
    late = datetime.now(timezone.utc) + timedelta(days=31)

    with pytest.raises(RefundNotAllowedError):
        await orders.cancel_order(order.id, actor_id=7, owner_id=7, now=late)

    after = await orders.get_order(order.id)
    assert after.status == before.status
    assert after.payment_status == OrderPaymentStatus.COMPLETED
    assert after.inventory_restored is False
    assert await seed.stock_of(tea.id) == 8
    payment = (await payments.payments_for_order(order.id, 7))[0]
    assert payment.status == PaymentStatus.COMPLETED


@pytest.mark.asyncio
async def test_return_outside_refund_window_stays_delivered(uow_factory, scheduler, payment_config, payments, seed):
    short = payment_config.model_copy(update={"refund_window_days": 1})
    orders = OrderService(uow_factory, RefundWorkflow(uow_factory, scheduler, config=short), store=StoreSettings())
    tea = await seed.product(stock=10)
    order = await seed.order(7, {tea.id: 3})
    await _pay(payments, order)
    for status in (OrderStatus.PACKAGED, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
        await orders.update_status(order.id, status, actor_id=1)

    with pytest.raises(RefundNotAllowedError):
        await orders.return_order(
            order.id, actor_id=7, owner_id=7, now=datetime.now(timezone.utc) + timedelta(days=3)
        )

    after = await orders.get_order(order.id)
    assert after.status == OrderStatus.DELIVERED
    assert after.payment_status == OrderPaymentStatus.COMPLETED
    assert await seed.stock_of(tea.id) == 7
