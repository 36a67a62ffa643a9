"""
Background task port. Services schedule follow-up work through this protocol;
the Celery adapter lives in infrastructure.tasks.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class TaskScheduler(Protocol):

    def schedule_reconcile(self, payment_id: int, countdown: Optional[int] = None) -> None: ...

    def schedule_refund_resume(self, payment_id: int, countdown: Optional[int] = None) -> None: ...
