import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from application.services.payment_service import PaymentService
from application.services.refund_service import RefundWorkflow
from domain.common.exceptions import RefundNotAllowedError, RefundNotFoundError, ValidationError
from domain.order.entity import OrderPaymentStatus
from domain.payment.entity import PaymentStatus, RefundStatus
from infrastructure.memory.repositories import InMemoryProductRepository
from infrastructure.tasks.scheduler import CeleryTaskScheduler


@pytest.fixture
def refunds(uow_factory, scheduler, payment_config):
    return RefundWorkflow(uow_factory, scheduler, config=payment_config)


@pytest.fixture
def payments(uow_factory, gateway, scheduler, payment_config):
    return PaymentService(uow_factory, gateway, scheduler, config=payment_config)


@pytest.fixture
async def paid(seed, payments):
    """A completed payment for two units of a product that had 10 in stock."""
    product = await seed.product(price=150000, stock=10)
    order = await seed.order(7, {product.id: 2})
    started = await payments.initiate_payment(order.id, 7)
    await payments.verify_payment(started.reference_id, started.authority)
    return product, order, await payments.get_payment(started.payment_id)


@pytest.mark.asyncio
async def test_refund_restores_stock_and_marks_order(refunds, paid, seed):
    product, order, payment = paid
    assert await seed.stock_of(product.id) == 8

    refunded = await refunds.request_refund(payment.id, None, "damaged", actor_id=1)

    assert refunded.status == PaymentStatus.REFUNDED
    assert refunded.refund.status == RefundStatus.PENDING
    assert refunded.refund.amount == payment.amount
    assert await seed.stock_of(product.id) == 10
    updated = await seed.get_order(order.id)
    assert updated.payment_status == OrderPaymentStatus.REFUNDED
    assert updated.inventory_restored


@pytest.mark.asyncio
async def test_concurrent_refunds_only_one_wins(refunds, paid, seed):
    product, _, payment = paid

    results = await asyncio.gather(
        refunds.request_refund(payment.id, None, "first", actor_id=1),
        refunds.request_refund(payment.id, None, "second", actor_id=2),
        return_exceptions=True,
    )

    assert sum(1 for r in results if not isinstance(r, Exception)) == 1
    assert sum(1 for r in results if isinstance(r, RefundNotAllowedError)) == 1
    assert await seed.stock_of(product.id) == 10


@pytest.mark.asyncio
async def test_refund_outside_window_is_rejected(refunds, paid):
    _, _, payment = paid
    late = datetime.now(timezone.utc) + timedelta(days=31)
    with pytest.raises(RefundNotAllowedError):
        await refunds.request_refund(payment.id, now=late)


@pytest.mark.asyncio
async def test_refund_cannot_exceed_payment(refunds, paid):
    _, _, payment = paid
    with pytest.raises(ValidationError):
        await refunds.request_refund(payment.id, payment.amount + 1)


@pytest.mark.asyncio
async def test_failed_restore_is_resumed(refunds, paid, seed, scheduler, monkeypatch):
    product, order, payment = paid

    async def broken(self, product_id, quantity):
        raise RuntimeError("stock table locked")

    monkeypatch.setattr(InMemoryProductRepository, "increment_stock", broken)
    refunded = await refunds.request_refund(payment.id, None, "late delivery", actor_id=1)

    assert refunded.status == PaymentStatus.REFUNDED
    assert scheduler.resumes == [payment.id]
    assert await seed.stock_of(product.id) == 8
    assert (await seed.get_order(order.id)).payment_status == OrderPaymentStatus.COMPLETED

    monkeypatch.undo()
    assert await refunds.resume_refund(payment.id) is True
    assert await seed.stock_of(product.id) == 10
    assert (await seed.get_order(order.id)).payment_status == OrderPaymentStatus.REFUNDED

    assert await refunds.resume_refund(payment.id) is False
    assert await seed.stock_of(product.id) == 10


@pytest.mark.asyncio
async def test_resume_requires_a_refund(refunds, paid):
    _, _, payment = paid
    with pytest.raises(RefundNotFoundError):
        await refunds.resume_refund(payment.id)


@pytest.mark.asyncio
async def test_complete_refund_once(refunds, paid):
    _, _, payment = paid
    await refunds.request_refund(payment.id)

    done = await refunds.complete_refund(payment.id, "RF-77")
    assert done.refund.status == RefundStatus.COMPLETED
    assert done.refund.transaction_id == "RF-77"

    with pytest.raises(RefundNotFoundError):
        await refunds.complete_refund(payment.id, "RF-78")


class BrokerDown:
    def enqueue(self, task_name, *, args=None, kwargs=None, countdown=None):
        raise ConnectionError("broker down")


@pytest.mark.asyncio
async def test_sweep_restores_stock_after_lost_resume_dispatch(uow_factory, paid, seed, payment_config, monkeypatch):
    product, order, payment = paid
    refunds = RefundWorkflow(uow_factory, CeleryTaskScheduler(BrokerDown()), config=payment_config)

    async def broken(self, product_id, quantity):
        raise RuntimeError("stock table locked")

    monkeypatch.setattr(InMemoryProductRepository, "increment_stock", broken)
    await refunds.request_refund(payment.id, None, "late delivery", actor_id=1)
    monkeypatch.undo()
    assert await seed.stock_of(product.id) == 8

    assert await refunds.resume_stalled() == 1
    assert await seed.stock_of(product.id) == 10
    updated = await seed.get_order(order.id)
    assert updated.inventory_restored
    assert updated.payment_status == OrderPaymentStatus.REFUNDED

    assert await refunds.resume_stalled() == 0
    assert await seed.stock_of(product.id) == 10


@pytest.mark.asyncio
async def test_sweep_ignores_orders_without_refund(refunds, paid, seed):
    product, _, _ = paid
    assert await refunds.resume_stalled() == 0
    assert await seed.stock_of(product.id) == 8
