from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from domain.cart.entity import Coupon
from domain.catalog.entity import Product, StockLevel
from domain.common.exceptions import ConcurrentModificationError, CouponInvalidError
from domain.order.entity import CouponType, Order, OrderItem
from domain.payment.entity import Payment, PaymentStatus
from infrastructure.models import Base
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


@pytest.fixture
async def uow_factory():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    sessions = async_sessionmaker(bind=engine, expire_on_commit=False)

    def factory(*, readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(sessions, readonly=readonly)

    yield factory
    await engine.dispose()


@pytest.mark.asyncio
async def test_stock_decrement_never_goes_negative(uow_factory):
    async with uow_factory() as uow:
        product = await uow.product_repository.create(
            Product(id=None, name="Saffron", price=250000, stock=StockLevel(quantity=5))
        )

    async with uow_factory() as uow:
        assert await uow.product_repository.try_decrement_stock(product.id, 3) is True
        assert await uow.product_repository.try_decrement_stock(product.id, 3) is False

    async with uow_factory(readonly=True) as uow:
        stored = await uow.product_repository.get_by_id(product.id)
    assert stored.stock.quantity == 2
    assert stored.stock.sold == 3


@pytest.mark.asyncio
async def test_rollback_discards_stock_change(uow_factory):
    async with uow_factory() as uow:
        product = await uow.product_repository.create(
            Product(id=None, name="Pistachio", price=90000, stock=StockLevel(quantity=4))
        )

    with pytest.raises(RuntimeError):
        async with uow_factory() as uow:
            await uow.product_repository.try_decrement_stock(product.id, 4)
            raise RuntimeError("abort checkout")

    async with uow_factory(readonly=True) as uow:
        assert (await uow.product_repository.get_by_id(product.id)).stock.quantity == 4


@pytest.mark.asyncio
async def test_stale_payment_write_is_rejected(uow_factory):
    async with uow_factory() as uow:
        payment = await uow.payment_repository.create(Payment.create(1, 7, 150000, "zarinpal"))

    async with uow_factory(readonly=True) as uow:
        first = await uow.payment_repository.get_by_id(payment.id)
        second = await uow.payment_repository.get_by_id(payment.id)

    async with uow_factory() as uow:
        first.mark_processing("A1")
        await uow.payment_repository.update(first)

    with pytest.raises(ConcurrentModificationError):
        async with uow_factory() as uow:
            second.mark_cancelled("customer left")
            await uow.payment_repository.update(second)

    async with uow_factory(readonly=True) as uow:
        stored = await uow.payment_repository.get_by_reference_id(payment.reference_id)
    assert stored.status == PaymentStatus.PROCESSING
    assert stored.version == first.version


@pytest.mark.asyncio
async def test_reloaded_coupon_compares_against_aware_clock(uow_factory):
    now = datetime.now(timezone.utc)
    async with uow_factory() as uow:
        await uow.coupon_repository.create(Coupon(
            id=None,
            code="save10",
            type=CouponType.PERCENTAGE,
            discount=10,
            valid_from=now - timedelta(days=1),
            valid_until=now + timedelta(days=1),
            minimum_amount=100000,
        ))

    async with uow_factory(readonly=True) as uow:
        coupon = await uow.coupon_repository.get_by_code("SAVE10")

    assert coupon.valid_from.tzinfo is not None
    assert coupon.valid_until.tzinfo is not None
    assert coupon.is_valid()
    coupon.check(500000)
    with pytest.raises(CouponInvalidError):
        coupon.check(500000, now + timedelta(days=2))


@pytest.mark.asyncio
async def test_awaiting_restock_lists_refunded_orders_holding_stock(uow_factory, address):
    async with uow_factory() as uow:
        orders = []
        for number in ("ORD-260101-0001", "ORD-260101-0002"):
            order = Order.place(
                order_number=number,
                user_id=7,
                items=[OrderItem(product_id=1, name="Tea", price=100000, quantity=1)],
                shipping_address=address,
            )
            order.inventory_committed = True
            orders.append(await uow.order_repository.create(order))
        payments = [
            await uow.payment_repository.create(Payment.create(o.id, 7, o.total_amount, "zarinpal"))
            for o in orders
        ]

    async with uow_factory() as uow:
        for payment in payments:
            payment.mark_processing("A1")
            payment.mark_completed("TX-1")
            await uow.payment_repository.update(payment)
        payments[0].process_refund(None, "damaged")
        await uow.payment_repository.update(payments[0])

    async with uow_factory(readonly=True) as uow:
        stalled = await uow.order_repository.list_awaiting_restock()
    assert [o.id for o in stalled] == [orders[0].id]
