"""Celery task infrastructure package.

Importing this module wires together the configured Celery app, the
dispatcher facade and the TaskScheduler adapter used by the services.
"""
from .config.celery import celery_app
from .scheduler import CeleryTaskScheduler
from .utils.dispatcher import TaskDispatcher

__all__ = ["celery_app", "CeleryTaskScheduler", "TaskDispatcher"]
