"""
Refund workflow - payment refund plus the matching stock restoration.

Two commits, in this order:
1. the refund request on the payment (status -> refunded, refund pending)
2. the inventory restore on the order (idempotent through
   ``order.inventory_restored``)

If step 2 fails the refund stays committed; the failure is logged and a
``refunds.resume`` task is scheduled to redo only the restore. The
``refunds.resume_stalled`` beat sweep redoes it for any order whose resume
task was never dispatched.
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from application.ports.task_scheduler import TaskScheduler
from application.services.event_handlers import PaymentEventDispatcher
from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings
from domain.common.exceptions import ConcurrentModificationError, OrderNotFoundError, RefundNotFoundError
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.inventory.service import InventoryAdjuster
from domain.payment.entity import Payment, PaymentStatus
from domain.payment.service import PaymentDomainService


logger = get_logger(__name__)

UnitOfWorkFactory = Callable[..., AbstractUnitOfWork]


class RefundWorkflow:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        scheduler: Optional[TaskScheduler] = None,
        *,
        config: PaymentSettings = payment_settings,
        dispatcher: Optional[PaymentEventDispatcher] = None,
    ) -> None:
        self.uow_factory = uow_factory
        self.scheduler = scheduler
        self.config = config
        self.dispatcher = dispatcher or PaymentEventDispatcher(uow_factory)

    def _domain(self, uow: AbstractUnitOfWork) -> PaymentDomainService:
        return PaymentDomainService(
            uow.payment_repository,
            min_amount=self.config.min_amount,
            refund_window_days=self.config.refund_window_days,
        )

    async def request_refund(
        self,
        payment_id: int,
        amount: Optional[int] = None,
        reason: Optional[str] = None,
        actor_id: Optional[int] = None,
        *,
        now: Optional[datetime] = None,
    ) -> Payment:
        async with self.uow_factory() as uow:
            domain = self._domain(uow)
            payment = await domain.request_refund(payment_id, amount, reason, actor_id, now=now)
            await uow.commit()
            events = domain.clear_events()

        logger.info(
            "refund_requested",
            payment_id=payment.id,
            order_id=payment.order_id,
            amount=payment.refund.amount,
            actor_id=actor_id,
        )
        await self.dispatcher.dispatch(events)

        try:
            await self._restore_inventory(payment)
        except Exception as exc:
            logger.error(
                "inventory_restore_failed",
                payment_id=payment.id,
                order_id=payment.order_id,
                error=str(exc),
                exc_info=True,
            )
            self._schedule_resume(payment.id)
        return payment

    async def resume_refund(self, payment_id: int) -> bool:
        """Redo the inventory step of a refund. Returns True if stock moved."""
        async with self.uow_factory(readonly=True) as uow:
            payment = await self._domain(uow).get_payment(payment_id)
        if payment.status != PaymentStatus.REFUNDED or payment.refund is None:
            raise RefundNotFoundError(payment.reference_id)
        restored = await self._restore_inventory(payment)
        logger.info("refund_resumed", payment_id=payment_id, restored=restored)
        return restored

    async def resume_stalled(self, limit: int = 100) -> int:
        """Restore stock for refunded orders a lost resume task left behind.

        Returns how many orders got their stock back.
        """
        async with self.uow_factory(readonly=True) as uow:
            orders = await uow.order_repository.list_awaiting_restock(limit)
            pending = []
            for order in orders:
                payments = await uow.payment_repository.find_by_order_and_user(order.id, order.user_id)
                pending.extend(p for p in payments if p.status == PaymentStatus.REFUNDED)

        restored = 0
        for payment in pending:
            try:
                if await self.resume_refund(payment.id):
                    restored += 1
            except Exception as exc:
                logger.error(
                    "refund_resume_sweep_item_failed",
                    payment_id=payment.id,
                    order_id=payment.order_id,
                    error=str(exc),
                )
        logger.info("refund_resume_sweep", examined=len(pending), restored=restored)
        return restored

    async def complete_refund(
        self,
        payment_id: int,
        transaction_id: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> Payment:
        """Record the gateway's confirmation that the money went back."""
        async with self.uow_factory() as uow:
            domain = self._domain(uow)
            payment = await domain.complete_refund(payment_id, transaction_id, now=now)
            await uow.commit()
            events = domain.clear_events()
        logger.info("refund_completed", payment_id=payment_id, transaction_id=transaction_id)
        await self.dispatcher.dispatch(events)
        return payment

    async def _restore_inventory(self, payment: Payment) -> bool:
        for attempt in range(2):
            async with self.uow_factory() as uow:
                order = await uow.order_repository.get_by_id(payment.order_id)
                if order is None:
                    raise OrderNotFoundError(payment.order_id)
                restored = await InventoryAdjuster(uow.product_repository).restore(order)
                order.mark_refunded(payment.refund.amount)
                try:
                    await uow.order_repository.update(order)
                except ConcurrentModificationError:
                    if attempt:
                        raise
                    await uow.rollback()
                    continue
                await uow.commit()
            if restored:
                logger.info("inventory_restored", order_id=order.id, payment_id=payment.id)
            return restored
        return False

    def _schedule_resume(self, payment_id: int) -> None:
        if self.scheduler is None:
            logger.warning("refund_resume_not_scheduled", payment_id=payment_id, reason="no scheduler")
            return
        self.scheduler.schedule_refund_resume(payment_id, countdown=self.config.reconcile.countdown_seconds)
        logger.info("refund_resume_scheduled", payment_id=payment_id)
