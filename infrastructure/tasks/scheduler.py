"""Celery-backed implementation of the TaskScheduler port."""
from __future__ import annotations

from typing import Optional

from core.logging_config import get_logger

from .utils.dispatcher import TaskDispatcher

logger = get_logger(__name__)

RECONCILE_TASK = "payments.reconcile"
REFUND_RESUME_TASK = "refunds.resume"
RECONCILE_STALE_TASK = "payments.reconcile_stale"


class CeleryTaskScheduler:
    """Sends follow-up work to the broker.

    Dispatch failures are logged and swallowed. The beat sweeps pick up what
    was missed: ``payments.reconcile_stale`` for processing payments and
    ``refunds.resume_stalled`` for refunded orders still holding stock.
    """

    def __init__(self, dispatcher: Optional[TaskDispatcher] = None) -> None:
        self.dispatcher = dispatcher or TaskDispatcher()

    def _send(self, task_name: str, payment_id: int, countdown: Optional[int]) -> None:
        try:
            self.dispatcher.enqueue(task_name, kwargs={"payment_id": payment_id}, countdown=countdown)
        except Exception as exc:
            logger.error("task_dispatch_failed", task=task_name, payment_id=payment_id, error=str(exc))

    def schedule_reconcile(self, payment_id: int, countdown: Optional[int] = None) -> None:
        self._send(RECONCILE_TASK, payment_id, countdown)

    def schedule_refund_resume(self, payment_id: int, countdown: Optional[int] = None) -> None:
        self._send(REFUND_RESUME_TASK, payment_id, countdown)
