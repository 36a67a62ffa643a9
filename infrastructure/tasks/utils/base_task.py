"""Common base task for payment and refund jobs"""
from __future__ import annotations

from celery import Task
from core.logging_config import get_logger

logger = get_logger(__name__)


def _payment_id(args, kwargs):
    if kwargs and "payment_id" in kwargs:
        return kwargs["payment_id"]
    return args[0] if args else None


class BaseTask(Task):
    """Logs every outcome with the payment it concerns."""

    def on_failure(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.error(
            "task_failed",
            task_id=task_id,
            task_name=self.name,
            payment_id=_payment_id(args, kwargs),
            retries=self.request.retries,
            error=str(exc),
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.warning(
            "task_retry",
            task_id=task_id,
            task_name=self.name,
            payment_id=_payment_id(args, kwargs),
            retries=self.request.retries,
            error=str(exc),
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):  # type: ignore[override]
        logger.info(
            "task_succeeded",
            task_id=task_id,
            task_name=self.name,
            payment_id=_payment_id(args, kwargs),
        )
        super().on_success(retval, task_id, args, kwargs)
