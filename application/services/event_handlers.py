"""
Post-commit handlers for payment domain events.

Payment code never writes orders directly. Services commit the payment
first and then hand the collected events to ``PaymentEventDispatcher``,
which applies their effects in separate units of work.
"""
from __future__ import annotations

from typing import Awaitable, Callable, Dict, List, Type

from core.logging_config import get_logger
from domain.common.exceptions import ConcurrentModificationError
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import OrderStatus
from domain.payment.events import (
    PaymentCancelled,
    PaymentCompleted,
    PaymentEvent,
    PaymentFailed,
    PaymentRefundCompleted,
    PaymentRefundRequested,
)


logger = get_logger(__name__)

UnitOfWorkFactory = Callable[..., AbstractUnitOfWork]
Handler = Callable[[PaymentEvent], Awaitable[None]]


class PaymentEventDispatcher:
    """Routes payment events to their handlers.

    A failing handler is logged and reported back to the caller; the
    payment it belongs to is already committed and stays that way.
    """

    def __init__(self, uow_factory: UnitOfWorkFactory) -> None:
        self.uow_factory = uow_factory
        self._handlers: Dict[Type[PaymentEvent], List[Handler]] = {
            PaymentCompleted: [self.apply_payment_to_order],
            PaymentFailed: [self.log_payment_closed],
            PaymentCancelled: [self.log_payment_closed],
            PaymentRefundRequested: [self.log_refund_event],
            PaymentRefundCompleted: [self.log_refund_event],
        }

    def register(self, event_type: Type[PaymentEvent], handler: Handler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    async def dispatch(self, events: List[PaymentEvent]) -> List[PaymentEvent]:
        """Run handlers for each event; returns the events whose handling failed."""
        failed: List[PaymentEvent] = []
        for event in events:
            for handler in self._handlers.get(type(event), []):
                try:
                    await handler(event)
                except Exception as exc:
                    logger.error(
                        "payment_event_handler_failed",
                        event=type(event).__name__,
                        event_id=event.event_id,
                        payment_id=event.payment_id,
                        handler=getattr(handler, "__name__", repr(handler)),
                        error=str(exc),
                        exc_info=True,
                    )
                    failed.append(event)
                    break
        return failed

    async def apply_payment_to_order(self, event: PaymentCompleted) -> None:
        """Mirror a completed payment onto its order and empty the buyer's cart."""
        for attempt in range(2):
            async with self.uow_factory() as uow:
                order = await uow.order_repository.get_by_id(event.order_id)
                if order is None:
                    logger.warning("payment_completed_order_missing", order_id=event.order_id,
                                   payment_id=event.payment_id)
                    return
                if not order.mark_paid(event.transaction_id, event.paid_at):
                    logger.info("order_already_paid", order_id=order.id, payment_id=event.payment_id)
                    return
                if order.status == OrderStatus.CANCELLED:
                    # paid after the customer cancelled; an operator has to refund it
                    logger.warning("payment_completed_for_cancelled_order", order_id=order.id,
                                   payment_id=event.payment_id)
                try:
                    await uow.order_repository.update(order)
                except ConcurrentModificationError:
                    if attempt:
                        raise
                    await uow.rollback()
                    continue

                cart = await uow.cart_repository.get_by_user(order.user_id)
                if cart is not None and not cart.is_empty:
                    cart.clear()
                    await uow.cart_repository.save(cart)
                await uow.commit()

            logger.info(
                "order_marked_paid",
                order_id=event.order_id,
                payment_id=event.payment_id,
                transaction_id=event.transaction_id,
            )
            return

    async def log_payment_closed(self, event: PaymentEvent) -> None:
        logger.info(
            "payment_closed",
            event=type(event).__name__,
            payment_id=event.payment_id,
            order_id=event.order_id,
            reason=getattr(event, "reason", None),
        )

    async def log_refund_event(self, event: PaymentEvent) -> None:
        logger.info(
            "refund_event",
            event=type(event).__name__,
            payment_id=event.payment_id,
            order_id=event.order_id,
            amount=getattr(event, "amount", None),
        )
