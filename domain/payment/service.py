"""
Payment domain service - payment rules that need the repository
"""
from datetime import datetime
from typing import List, Optional

from .entity import Payment, PaymentMethod, PaymentStatus, MIN_PAYMENT_AMOUNT, REFUND_WINDOW_DAYS
from .events import (
    PaymentCancelled,
    PaymentCompleted,
    PaymentFailed,
    PaymentRefundCompleted,
    PaymentRefundRequested,
)
from .repository import PaymentRepository
from domain.common.exceptions import (
    ConcurrentModificationError,
    PaymentAlreadyCompletedError,
    PaymentNotFoundError,
)


class PaymentDomainService:
    """
    Payment domain service.

    Responsibilities:
    1. one completed payment per order
    2. state transitions persisted through optimistic writes
    3. refund requests serialized per payment
    4. domain events collected for post-commit handlers
    """

    def __init__(
        self,
        payment_repository: PaymentRepository,
        *,
        min_amount: int = MIN_PAYMENT_AMOUNT,
        refund_window_days: int = REFUND_WINDOW_DAYS,
    ):
        self.payment_repository = payment_repository
        self.min_amount = min_amount
        self.refund_window_days = refund_window_days
        self.events: List = []

    async def get_payment(self, payment_id: int) -> Payment:
        payment = await self.payment_repository.get_by_id(payment_id)
        if payment is None:
            raise PaymentNotFoundError(f"id={payment_id}")
        return payment

    async def get_by_reference(self, reference_id: str) -> Payment:
        payment = await self.payment_repository.get_by_reference_id(reference_id)
        if payment is None:
            raise PaymentNotFoundError(reference_id)
        return payment

    async def create_payment(
        self,
        order_id: int,
        user_id: int,
        amount: int,
        method: PaymentMethod | str,
        *,
        description: Optional[str] = None,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Payment:
        """
        Create a pending payment for an order.

        Rules:
        1. an order that already has a completed payment cannot be paid again
        2. amount must reach the configured minimum
        """
        if await self.payment_repository.get_completed_by_order(order_id) is not None:
            raise PaymentAlreadyCompletedError(order_id)

        payment = Payment.create(
            order_id,
            user_id,
            amount,
            method,
            description=description,
            min_amount=self.min_amount,
        )
        payment.ip = ip
        payment.user_agent = user_agent
        return await self.payment_repository.create(payment)

    async def log_attempt(self, payment: Payment, ip: Optional[str] = None,
                          user_agent: Optional[str] = None) -> Payment:
        payment.log_attempt(ip, user_agent)
        return await self.payment_repository.update(payment)

    async def start_processing(self, payment: Payment, authority: Optional[str] = None) -> Payment:
        payment.mark_processing(authority)
        return await self.payment_repository.update(payment)

    async def confirm_payment(
        self,
        payment: Payment,
        transaction_id: str,
        paid_at: Optional[datetime] = None,
        gateway_data: Optional[dict] = None,
    ) -> Payment:
        payment.mark_completed(transaction_id, paid_at)
        if gateway_data:
            payment.gateway_data.update(gateway_data)
        updated = await self.payment_repository.update(payment)
        self.events.append(PaymentCompleted(
            payment_id=updated.id,
            order_id=updated.order_id,
            reference_id=updated.reference_id,
            transaction_id=updated.transaction_id,
            amount=updated.amount,
            paid_at=updated.paid_at,
        ))
        return updated

    async def fail_payment(self, payment: Payment, reason: Optional[str] = None) -> Payment:
        payment.mark_failed(reason)
        updated = await self.payment_repository.update(payment)
        self.events.append(PaymentFailed(
            payment_id=updated.id,
            order_id=updated.order_id,
            reference_id=updated.reference_id,
            reason=reason,
        ))
        return updated

    async def cancel_payment(self, payment: Payment, reason: Optional[str] = None) -> Payment:
        payment.mark_cancelled(reason)
        updated = await self.payment_repository.update(payment)
        self.events.append(PaymentCancelled(
            payment_id=updated.id,
            order_id=updated.order_id,
            reference_id=updated.reference_id,
            reason=reason,
        ))
        return updated

    async def request_refund(
        self,
        payment_id: int,
        amount: Optional[int] = None,
        reason: Optional[str] = None,
        actor_id: Optional[int] = None,
        *,
        now: Optional[datetime] = None,
    ) -> Payment:
        """
        Open the refund request on a payment.

        Concurrent callers race on the payment version. The loser reloads
        and re-checks; it then sees the pending refund and gets
        RefundNotAllowedError instead of a second refund.
        """
        payment = await self.get_payment(payment_id)
        payment.process_refund(amount, reason, actor_id, now=now, window_days=self.refund_window_days)
        try:
            updated = await self.payment_repository.update(payment)
        except ConcurrentModificationError:
            payment = await self.get_payment(payment_id)
            payment.process_refund(amount, reason, actor_id, now=now, window_days=self.refund_window_days)
            updated = await self.payment_repository.update(payment)

        self.events.append(PaymentRefundRequested(
            payment_id=updated.id,
            order_id=updated.order_id,
            reference_id=updated.reference_id,
            amount=updated.refund.amount,
            actor_id=actor_id,
            reason=reason,
        ))
        return updated

    async def complete_refund(self, payment_id: int, transaction_id: Optional[str] = None,
                              *, now: Optional[datetime] = None) -> Payment:
        payment = await self.get_payment(payment_id)
        payment.complete_refund(transaction_id, now)
        updated = await self.payment_repository.update(payment)
        self.events.append(PaymentRefundCompleted(
            payment_id=updated.id,
            order_id=updated.order_id,
            reference_id=updated.reference_id,
            amount=updated.refund.amount,
            transaction_id=transaction_id,
        ))
        return updated

    async def completed_payment_for(self, order_id: int) -> Optional[Payment]:
        payment = await self.payment_repository.get_completed_by_order(order_id)
        if payment is not None and payment.status == PaymentStatus.COMPLETED:
            return payment
        return None

    def clear_events(self) -> List:
        """Drain and return collected domain events"""
        events = self.events.copy()
        self.events.clear()
        return events
