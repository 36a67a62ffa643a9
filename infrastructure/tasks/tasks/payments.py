"""
Celery tasks for payment follow-up: reconciliation and refund resumption.

Business errors such as an unknown payment or a refund not in progress are
final and are not retried; version conflicts and recoverable gateway errors
are.

Each task runs its coroutine with asyncio.run and disposes the engine pool
afterwards, since pooled connections are bound to the loop that made them.
"""
from __future__ import annotations

import asyncio

from celery import shared_task

from application.services.payment_service import PaymentService
from application.services.refund_service import RefundWorkflow
from core.logging_config import get_logger
from domain.common.exceptions import (
    BusinessException,
    ConcurrentModificationError,
    PaymentRecoverableError,
)
from infrastructure.database import engine
from infrastructure.external.payments import get_payment_gateway
from infrastructure.unit_of_work import sqlalchemy_uow_factory

from ..scheduler import CeleryTaskScheduler
from ..utils.base_task import BaseTask


logger = get_logger(__name__)


def _is_final(exc: Exception) -> bool:
    if isinstance(exc, (ConcurrentModificationError, PaymentRecoverableError)):
        return False
    return isinstance(exc, BusinessException)


def _run(coro):
    async def _wrapped():
        try:
            return await coro
        finally:
            await engine.dispose()

    return asyncio.run(_wrapped())


async def _reconcile(payment_id: int) -> dict:
    gateway = get_payment_gateway()
    service = PaymentService(sqlalchemy_uow_factory, gateway, CeleryTaskScheduler())
    try:
        result = await service.reconcile_payment(payment_id)
    finally:
        await gateway.aclose()
    return {"status": result.status.value, "message": result.message}


async def _reconcile_stale(limit: int) -> int:
    gateway = get_payment_gateway()
    service = PaymentService(sqlalchemy_uow_factory, gateway, CeleryTaskScheduler())
    try:
        return await service.reconcile_stale(limit)
    finally:
        await gateway.aclose()


@shared_task(name="payments.reconcile", bind=True, base=BaseTask, max_retries=3, default_retry_delay=30)
def reconcile_payment(self, payment_id: int):
    try:
        return _run(_reconcile(payment_id))
    except Exception as exc:
        if _is_final(exc):
            raise
        logger.error("payment_reconcile_task_failed", payment_id=payment_id, error=str(exc))
        raise self.retry(exc=exc)


@shared_task(name="refunds.resume", bind=True, base=BaseTask, max_retries=5, default_retry_delay=60)
def resume_refund(self, payment_id: int):
    workflow = RefundWorkflow(sqlalchemy_uow_factory, CeleryTaskScheduler())
    try:
        restored = _run(workflow.resume_refund(payment_id))
    except Exception as exc:
        if _is_final(exc):
            raise
        logger.error("refund_resume_task_failed", payment_id=payment_id, error=str(exc))
        raise self.retry(exc=exc)
    return {"restored": restored}


@shared_task(name="payments.reconcile_stale", base=BaseTask)
def reconcile_stale(limit: int = 100):
    examined = _run(_reconcile_stale(limit))
    logger.info("payment_reconcile_sweep", examined=examined)
    return {"examined": examined}


@shared_task(name="refunds.resume_stalled", base=BaseTask)
def resume_stalled_refunds(limit: int = 100):
    workflow = RefundWorkflow(sqlalchemy_uow_factory, CeleryTaskScheduler())
    restored = _run(workflow.resume_stalled(limit))
    return {"restored": restored}
