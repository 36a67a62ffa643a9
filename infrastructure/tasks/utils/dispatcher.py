"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from typing import Any, Dict, Optional

from ..config.celery import celery_app


class TaskDispatcher:
    """Internal facade used to schedule tasks by name."""

    def enqueue(
        self,
        task_name: str,
        *,
        args: tuple | None = None,
        kwargs: Dict[str, Any] | None = None,
        countdown: Optional[int] = None,
    ) -> None:
        celery_app.send_task(task_name, args=args or (), kwargs=kwargs or {}, countdown=countdown)
