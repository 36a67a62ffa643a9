"""Celery beat schedule configuration."""
from __future__ import annotations

CELERY_BEAT_SCHEDULE = {
    # safety net for payments whose reconcile task never got dispatched
    "reconcile-stale-payments": {
        "task": "payments.reconcile_stale",
        "schedule": 600,
        "kwargs": {"limit": 100},
    },
    # stock restores whose refunds.resume dispatch was lost
    "resume-stalled-refunds": {
        "task": "refunds.resume_stalled",
        "schedule": 900,
        "kwargs": {"limit": 100},
    },
}
