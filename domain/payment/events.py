"""
Payment domain events.

Dataclass events record payment lifecycle facts. They are collected by the
domain service and handed to explicit post-commit handlers by the
application layer, so no side effect hides inside a save.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class PaymentEvent:
    payment_id: Optional[int]
    order_id: int
    reference_id: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PaymentCompleted(PaymentEvent):
    transaction_id: Optional[str] = None
    amount: int = 0
    paid_at: Optional[datetime] = None


@dataclass
class PaymentFailed(PaymentEvent):
    reason: Optional[str] = None


@dataclass
class PaymentCancelled(PaymentEvent):
    reason: Optional[str] = None


@dataclass
class PaymentRefundRequested(PaymentEvent):
    amount: int = 0
    actor_id: Optional[int] = None
    reason: Optional[str] = None


@dataclass
class PaymentRefundCompleted(PaymentEvent):
    amount: int = 0
    transaction_id: Optional[str] = None
