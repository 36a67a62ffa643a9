from datetime import datetime, timezone

import pytest

from application.services.event_handlers import PaymentEventDispatcher
from domain.common.exceptions import (
    ConcurrentModificationError,
    PaymentNotFoundError,
    PaymentRecoverableError,
    RefundNotFoundError,
)
from domain.order.entity import OrderPaymentStatus, OrderStatus
from domain.payment.events import PaymentCompleted
from infrastructure.tasks.scheduler import (
    RECONCILE_TASK,
    REFUND_RESUME_TASK,
    CeleryTaskScheduler,
)
from infrastructure.tasks.tasks.payments import _is_final


class FakeDispatcher:
    def __init__(self, fail: bool = False) -> None:
        self.sent = []
        self.fail = fail

    def enqueue(self, task_name, *, args=None, kwargs=None, countdown=None):
        if self.fail:
            raise ConnectionError("broker down")
        self.sent.append((task_name, kwargs, countdown))


def test_scheduler_sends_named_tasks():
    dispatcher = FakeDispatcher()
    scheduler = CeleryTaskScheduler(dispatcher)

    scheduler.schedule_reconcile(5, countdown=60)
    scheduler.schedule_refund_resume(6)

    assert dispatcher.sent == [
        (RECONCILE_TASK, {"payment_id": 5}, 60),
        (REFUND_RESUME_TASK, {"payment_id": 6}, None),
    ]


def test_scheduler_survives_broker_outage():
    CeleryTaskScheduler(FakeDispatcher(fail=True)).schedule_reconcile(5)


def _completed(order_id: int) -> PaymentCompleted:
    return PaymentCompleted(
        payment_id=1,
        order_id=order_id,
        reference_id="PAY-1",
        transaction_id="TX-1",
        amount=100000,
        paid_at=datetime.now(timezone.utc),
    )


@pytest.mark.asyncio
async def test_completed_payment_is_applied_once(uow_factory, seed):
    product = await seed.product(stock=5)
    order = await seed.order(7, {product.id: 1})
    dispatcher = PaymentEventDispatcher(uow_factory)

    assert await dispatcher.dispatch([_completed(order.id)]) == []
    assert await dispatcher.dispatch([_completed(order.id)]) == []

    updated = await seed.get_order(order.id)
    assert updated.payment_status == OrderPaymentStatus.COMPLETED
    assert updated.status == OrderStatus.PROCESSING
    assert updated.transaction_id == "TX-1"


@pytest.mark.asyncio
async def test_missing_order_is_not_a_failure(uow_factory):
    assert await PaymentEventDispatcher(uow_factory).dispatch([_completed(404)]) == []


@pytest.mark.asyncio
async def test_failing_handler_is_reported(uow_factory):
    dispatcher = PaymentEventDispatcher(uow_factory)

    async def boom(event):
        raise RuntimeError("handler crashed")

    dispatcher.register(PaymentCompleted, boom)
    event = _completed(404)
    assert await dispatcher.dispatch([event]) == [event]


def test_only_transient_task_errors_are_retried():
    assert _is_final(RefundNotFoundError("PAY-1"))
    assert _is_final(PaymentNotFoundError("id=1"))
    assert not _is_final(ConcurrentModificationError("payment", 1, 2))
    assert not _is_final(PaymentRecoverableError("timeout", provider="zarinpal"))
    assert not _is_final(ConnectionError("database gone"))
