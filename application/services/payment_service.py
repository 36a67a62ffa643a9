"""
Application service orchestrating payment use-cases.

This class depends only on the application ports (PaymentGateway,
TaskScheduler) and a unit of work factory. Gateway implementations are
provided by infrastructure and injected from the composition root
(API/tasks), keeping dependencies one-way.
"""
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from application.dtos.payments import (
    GatewayVerification,
    InitiatePaymentResponse,
    PaymentResult,
)
from application.ports.payment_gateway import PaymentGateway
from application.ports.task_scheduler import TaskScheduler
from application.services.event_handlers import PaymentEventDispatcher
from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings
from domain.common.exceptions import (
    BusinessException,
    ConcurrentModificationError,
    InvalidStateError,
    OrderNotFoundError,
    PaymentAlreadyCompletedError,
    PaymentNotFoundError,
    PaymentProviderError,
    PaymentRecoverableError,
    ValidationError,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import OrderPaymentStatus, OrderStatus
from domain.payment.entity import Payment, PaymentMethod, PaymentStatus
from domain.payment.events import PaymentCompleted
from domain.payment.repository import MethodStats, RevenueSummary
from domain.payment.service import PaymentDomainService


logger = get_logger(__name__)

UnitOfWorkFactory = Callable[..., AbstractUnitOfWork]

RECONCILE_ATTEMPTS_KEY = "reconcile_attempts"


class GatewayTimeout(PaymentRecoverableError):
    def __init__(self, provider: str, operation: str, timeout: float):
        super().__init__(
            f"{operation} did not answer within {timeout}s",
            provider=provider,
            details={"operation": operation, "timeout": timeout},
        )


class PaymentService:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        gateway: PaymentGateway,
        scheduler: Optional[TaskScheduler] = None,
        *,
        config: PaymentSettings = payment_settings,
        dispatcher: Optional[PaymentEventDispatcher] = None,
    ) -> None:
        self.uow_factory = uow_factory
        self.gateway = gateway
        self.scheduler = scheduler
        self.config = config
        self.dispatcher = dispatcher or PaymentEventDispatcher(uow_factory)

    def _domain(self, uow: AbstractUnitOfWork) -> PaymentDomainService:
        return PaymentDomainService(
            uow.payment_repository,
            min_amount=self.config.min_amount,
            refund_window_days=self.config.refund_window_days,
        )

    async def _call_gateway(self, operation: str, coro):
        """Await a gateway call under the configured total timeout."""
        timeout = self.config.timeouts.total
        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("gateway_timeout", provider=self.gateway.provider, operation=operation, timeout=timeout)
            raise GatewayTimeout(self.gateway.provider, operation, timeout)

    async def _publish(self, events: list, payment_id: Optional[int]) -> None:
        failed = await self.dispatcher.dispatch(events)
        if failed and payment_id is not None:
            # reconciliation re-applies completed payments to their order
            self._schedule_reconcile(payment_id)

    def _schedule_reconcile(self, payment_id: int, countdown: Optional[int] = None) -> None:
        if self.scheduler is None:
            logger.warning("reconcile_not_scheduled", payment_id=payment_id, reason="no scheduler")
            return
        self.scheduler.schedule_reconcile(
            payment_id,
            countdown=self.config.reconcile.countdown_seconds if countdown is None else countdown,
        )
        logger.info("reconcile_scheduled", payment_id=payment_id)

    @staticmethod
    def _result(payment: Payment, message: Optional[str] = None) -> PaymentResult:
        return PaymentResult(
            success=payment.status == PaymentStatus.COMPLETED,
            status=payment.status,
            reference_id=payment.reference_id,
            order_id=payment.order_id,
            amount=payment.amount,
            transaction_id=payment.transaction_id,
            message=message,
        )

    # ------------------------------------------------------------------ #
    # Initiate
    # ------------------------------------------------------------------ #
    async def initiate_payment(
        self,
        order_id: int,
        user_id: int,
        method: PaymentMethod | str = PaymentMethod.ZARINPAL,
        *,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> InitiatePaymentResponse:
        """
        Create a payment for a pending order and obtain the gateway redirect.

        Recoverable gateway errors (including timeouts) are retried with
        exponential backoff; every retry is counted on the payment. When the
        retries run out, or the gateway rejects the request, the payment is
        marked failed and the error is raised.
        """
        method_name = method.value if isinstance(method, PaymentMethod) else str(method)
        if method_name not in self.config.supported_methods:
            raise ValidationError(f"Payment method {method_name} is not available", field="method")

        async with self.uow_factory() as uow:
            order = await uow.order_repository.get_by_id(order_id)
            if order is None or order.user_id != user_id:
                raise OrderNotFoundError(order_id)
            if order.payment_status != OrderPaymentStatus.PENDING:
                raise PaymentAlreadyCompletedError(order_id)
            if order.status != OrderStatus.PENDING:
                raise InvalidStateError("order", order.status.value, "payment")
            payment = await self._domain(uow).create_payment(
                order.id,
                user_id,
                order.total_amount,
                method,
                description=f"Payment for order {order.order_number}",
                ip=ip,
                user_agent=user_agent,
            )
            await uow.commit()

        logger.info(
            "payment_initiate_request",
            payment_id=payment.id,
            order_id=order_id,
            reference_id=payment.reference_id,
            amount=payment.amount,
            provider=self.gateway.provider,
        )

        try:
            initiation = await self._initiate_with_retry(payment, ip, user_agent)
        except BusinessException as exc:
            async with self.uow_factory() as uow:
                domain = self._domain(uow)
                current = await domain.get_payment(payment.id)
                await domain.fail_payment(current, exc.message)
                await uow.commit()
                events = domain.clear_events()
            await self._publish(events, payment.id)
            logger.error(
                "payment_initiate_failed",
                payment_id=payment.id,
                reference_id=payment.reference_id,
                error=exc.message,
            )
            raise

        async with self.uow_factory() as uow:
            domain = self._domain(uow)
            current = await domain.get_payment(payment.id)
            payment = await domain.start_processing(current, initiation.transaction_ref)
            await uow.commit()

        logger.info(
            "payment_redirect_ready",
            payment_id=payment.id,
            reference_id=payment.reference_id,
            authority=initiation.transaction_ref,
        )
        return InitiatePaymentResponse(
            payment_id=payment.id,
            reference_id=payment.reference_id,
            redirect_url=initiation.redirect_url,
            authority=initiation.transaction_ref,
            amount=payment.amount,
        )

    async def _initiate_with_retry(self, payment: Payment, ip: Optional[str], user_agent: Optional[str]):
        retry_cfg = self.config.retry
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(int(retry_cfg.max) + 1),
                wait=wait_exponential(multiplier=retry_cfg.base_backoff, min=0, max=2.0),
                retry=retry_if_exception_type(PaymentRecoverableError),
                reraise=False,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        await self._log_attempt(payment.id, ip, user_agent)
                    return await self._call_gateway(
                        "initiate",
                        self.gateway.initiate(
                            payment.amount,
                            payment.description or payment.reference_id,
                            self.config.callback_url,
                        ),
                    )
        except RetryError as exc:
            last = exc.last_attempt.exception()
            raise PaymentProviderError(
                f"Gateway unavailable after {exc.last_attempt.attempt_number} attempts: {getattr(last, 'message', last)}",
                provider=self.gateway.provider,
                details={"attempts": exc.last_attempt.attempt_number},
            ) from last

    async def _log_attempt(self, payment_id: int, ip: Optional[str], user_agent: Optional[str]) -> None:
        async with self.uow_factory() as uow:
            domain = self._domain(uow)
            payment = await domain.get_payment(payment_id)
            payment = await domain.log_attempt(payment, ip, user_agent)
            await uow.commit()
        logger.info("payment_attempt_logged", payment_id=payment_id, attempts=payment.attempts)

    # ------------------------------------------------------------------ #
    # Verify / reconcile
    # ------------------------------------------------------------------ #
    async def verify_payment(
        self,
        reference_id: str,
        gateway_token: str,
        status: str = "OK",
        *,
        user_id: Optional[int] = None,
    ) -> PaymentResult:
        """
        Handle the customer's return from the gateway.

        A callback status other than OK means the customer abandoned the
        payment, which cancels it. Gateway errors, timeouts and unsuccessful
        verifications leave the payment processing and schedule
        reconciliation.
        """
        async with self.uow_factory(readonly=True) as uow:
            payment = await self._domain(uow).get_by_reference(reference_id)
        if user_id is not None and payment.user_id != user_id:
            raise PaymentNotFoundError(reference_id)

        if payment.status == PaymentStatus.COMPLETED:
            return self._result(payment, "payment already verified")
        if payment.status != PaymentStatus.PROCESSING:
            return self._result(payment, f"payment is {payment.status.value}")

        authority = payment.gateway_data.get("authority")
        if authority and authority != gateway_token:
            raise ValidationError("gateway token does not match this payment", field="authority")

        if (status or "").upper() != "OK":
            async with self.uow_factory() as uow:
                domain = self._domain(uow)
                payment = await domain.cancel_payment(payment, "cancelled by customer at gateway")
                await uow.commit()
                events = domain.clear_events()
            await self._publish(events, payment.id)
            logger.info("payment_cancelled_by_customer", payment_id=payment.id, reference_id=reference_id)
            return self._result(payment, "payment cancelled by customer")

        verification = await self._verify_at_gateway(payment)
        if verification is None or not verification.success:
            self._schedule_reconcile(payment.id)
            return self._result(payment, "verification pending")
        return await self._confirm(payment, verification)

    async def _verify_at_gateway(self, payment: Payment) -> Optional[GatewayVerification]:
        token = payment.gateway_data.get("authority")
        try:
            verification = await self._call_gateway("verify", self.gateway.verify(token, payment.amount))
        except (PaymentRecoverableError, PaymentProviderError) as exc:
            logger.warning(
                "payment_verify_error",
                payment_id=payment.id,
                reference_id=payment.reference_id,
                error=exc.message,
            )
            return None
        logger.info(
            "payment_verify_result",
            payment_id=payment.id,
            success=verification.success,
            status_code=verification.status_code,
        )
        return verification

    async def _confirm(self, payment: Payment, verification: GatewayVerification) -> PaymentResult:
        gateway_data = {"status_code": verification.status_code}
        if verification.card_pan:
            gateway_data["card_pan"] = verification.card_pan
        if verification.gateway_transaction_id:
            gateway_data["ref_id"] = verification.gateway_transaction_id

        async with self.uow_factory() as uow:
            domain = self._domain(uow)
            current = await domain.get_payment(payment.id)
            if current.status == PaymentStatus.COMPLETED:
                return self._result(current, "payment already verified")
            try:
                payment = await domain.confirm_payment(
                    current,
                    verification.gateway_transaction_id or current.reference_id,
                    gateway_data=gateway_data,
                )
            except ConcurrentModificationError:
                # a duplicate callback or reconcile run confirmed it first
                await uow.rollback()
                payment = await domain.get_payment(payment.id)
                return self._result(payment, "payment already verified")
            await uow.commit()
            events = domain.clear_events()

        logger.info(
            "payment_completed",
            payment_id=payment.id,
            order_id=payment.order_id,
            transaction_id=payment.transaction_id,
        )
        await self._publish(events, payment.id)
        return self._result(payment, "payment verified")

    async def reconcile_payment(self, payment_id: int) -> PaymentResult:
        """
        Re-verify a payment stuck in processing.

        After ``reconcile.max_attempts`` unsuccessful verifications the
        payment is marked failed. A completed payment only has its order
        re-synchronised.
        """
        async with self.uow_factory(readonly=True) as uow:
            payment = await self._domain(uow).get_payment(payment_id)

        if payment.status == PaymentStatus.COMPLETED:
            await self.dispatcher.dispatch([PaymentCompleted(
                payment_id=payment.id,
                order_id=payment.order_id,
                reference_id=payment.reference_id,
                transaction_id=payment.transaction_id,
                amount=payment.amount,
                paid_at=payment.paid_at,
            )])
            return self._result(payment, "payment already verified")
        if payment.status != PaymentStatus.PROCESSING:
            return self._result(payment, f"payment is {payment.status.value}")

        verification = await self._verify_at_gateway(payment)
        if verification is not None and verification.success:
            return await self._confirm(payment, verification)

        max_attempts = self.config.reconcile.max_attempts
        async with self.uow_factory() as uow:
            domain = self._domain(uow)
            current = await domain.get_payment(payment_id)
            if current.status != PaymentStatus.PROCESSING:
                return self._result(current)
            attempts = int(current.metadata.get(RECONCILE_ATTEMPTS_KEY, 0)) + 1
            current.metadata[RECONCILE_ATTEMPTS_KEY] = attempts
            if verification is not None:
                current.gateway_data["status_code"] = verification.status_code
            if attempts >= max_attempts:
                payment = await domain.fail_payment(
                    current, f"verification failed after {attempts} attempts"
                )
            else:
                payment = await uow.payment_repository.update(current)
            await uow.commit()
            events = domain.clear_events()

        await self._publish(events, payment.id)
        if payment.status == PaymentStatus.FAILED:
            logger.warning("payment_reconcile_exhausted", payment_id=payment_id, attempts=attempts)
            return self._result(payment, "verification failed")
        logger.info("payment_reconcile_retry", payment_id=payment_id, attempts=attempts)
        self._schedule_reconcile(payment_id)
        return self._result(payment, "verification pending")

    async def reconcile_stale(self, limit: int = 100) -> int:
        """Reconcile every processing payment; returns how many were examined."""
        async with self.uow_factory(readonly=True) as uow:
            pending = await uow.payment_repository.list_processing(limit)
        for payment in pending:
            await self.reconcile_payment(payment.id)
        return len(pending)

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #
    async def get_payment(self, payment_id: int, user_id: Optional[int] = None) -> Payment:
        async with self.uow_factory(readonly=True) as uow:
            payment = await self._domain(uow).get_payment(payment_id)
        if user_id is not None and payment.user_id != user_id:
            raise PaymentNotFoundError(f"id={payment_id}")
        return payment

    async def get_by_reference(self, reference_id: str, user_id: Optional[int] = None) -> Payment:
        async with self.uow_factory(readonly=True) as uow:
            payment = await self._domain(uow).get_by_reference(reference_id)
        if user_id is not None and payment.user_id != user_id:
            raise PaymentNotFoundError(reference_id)
        return payment

    async def list_history(
        self,
        user_id: int,
        page: int = 1,
        size: int = 10,
        status: Optional[PaymentStatus] = None,
    ) -> Tuple[List[Payment], int]:
        async with self.uow_factory(readonly=True) as uow:
            items = await uow.payment_repository.list_by_user(user_id, (page - 1) * size, size, status)
            total = await uow.payment_repository.count_by_user(user_id, status)
        return items, total

    async def payments_for_order(self, order_id: int, user_id: int) -> List[Payment]:
        async with self.uow_factory(readonly=True) as uow:
            return await uow.payment_repository.find_by_order_and_user(order_id, user_id)

    async def calculate_revenue(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> RevenueSummary:
        async with self.uow_factory(readonly=True) as uow:
            return await uow.payment_repository.calculate_revenue(start, end)

    async def stats_by_method(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> List[MethodStats]:
        async with self.uow_factory(readonly=True) as uow:
            return await uow.payment_repository.stats_by_method(start, end)

    async def failed_payments(self, user_id: Optional[int] = None, limit: int = 10) -> List[Payment]:
        async with self.uow_factory(readonly=True) as uow:
            return await uow.payment_repository.list_failed(user_id, limit)
