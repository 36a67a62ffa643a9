"""
Payment domain entity - the payment aggregate root
"""
from __future__ import annotations

import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from domain.common.exceptions import (
    InvalidStateError,
    RefundNotAllowedError,
    RefundNotFoundError,
    ValidationError,
)
from domain.common.money import format_amount, validate_amount


MIN_PAYMENT_AMOUNT = 1000
REFUND_WINDOW_DAYS = 30

_BASE36 = string.digits + string.ascii_uppercase


class PaymentStatus(str, Enum):
    """Payment status"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    ZARINPAL = "zarinpal"
    MELLAT = "mellat"
    SAMAN = "saman"
    PAYIR = "payir"
    IDPAY = "idpay"
    CASH = "cash"
    CARD_TO_CARD = "card_to_card"


class RefundStatus(str, Enum):
    """Refund sub-record status"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalize a timestamp to UTC (naive values are assumed to be UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_reference_id(now_ms: Optional[int] = None) -> str:
    """Build ``PAY-<ms timestamp base36>-<5 random base36 chars>``, uppercase."""
    ts = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(5))
    return f"PAY-{_to_base36(ts)}-{suffix}"


@dataclass
class RefundInfo:
    """Refund request embedded in a payment (at most one per payment)."""

    status: RefundStatus
    amount: int
    reason: Optional[str] = None
    refunded_by: Optional[int] = None
    requested_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    transaction_id: Optional[str] = None

    def __post_init__(self):
        self.status = RefundStatus(self.status)
        validate_amount(self.amount, minimum=1, field="refund_amount")
        self.requested_at = _ensure_utc(self.requested_at)
        self.refunded_at = _ensure_utc(self.refunded_at)


@dataclass
class Payment:
    """
    Payment aggregate root.

    Business rules:
    1. amount is an integer not below the configured minimum
    2. reference_id is generated once by ``create`` and never changes
    3. status moves forward only; failed/cancelled payments are never revived,
       a retry creates a new Payment
    4. a refund needs a completed payment, no completed refund yet, and must
       be requested within the refund window counted from ``paid_at``
    5. refund amount never exceeds the payment amount
    """

    id: Optional[int]
    order_id: int
    user_id: int
    amount: int
    method: PaymentMethod
    reference_id: str
    status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: Optional[str] = None
    description: Optional[str] = None
    paid_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    attempts: int = 1
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    gateway_data: dict = field(default_factory=dict)
    refund: Optional[RefundInfo] = None
    metadata: dict = field(default_factory=dict)
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        validate_amount(self.amount, minimum=1)
        self.method = PaymentMethod(self.method)
        self.status = PaymentStatus(self.status)
        if not self.reference_id:
            raise ValidationError("reference_id is required", field="reference_id")
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.paid_at = _ensure_utc(self.paid_at)
        if self.gateway_data is None:
            self.gateway_data = {}
        if self.metadata is None:
            self.metadata = {}

    @classmethod
    def create(
        cls,
        order_id: int,
        user_id: int,
        amount: int,
        method: PaymentMethod | str,
        *,
        description: Optional[str] = None,
        min_amount: int = MIN_PAYMENT_AMOUNT,
        now: Optional[datetime] = None,
    ) -> "Payment":
        """Factory for a new pending payment; assigns the reference id."""
        validate_amount(amount, minimum=min_amount)
        try:
            method = PaymentMethod(method)
        except ValueError:
            raise ValidationError(f"Unsupported payment method: {method}", field="method")
        now = _ensure_utc(now) or datetime.now(timezone.utc)
        return cls(
            id=None,
            order_id=order_id,
            user_id=user_id,
            amount=amount,
            method=method,
            reference_id=generate_reference_id(int(now.timestamp() * 1000)),
            status=PaymentStatus.PENDING,
            description=description,
            created_at=now,
            updated_at=now,
        )

    # ------------------------------------------------------------------ #
    # Derived
    # ------------------------------------------------------------------ #
    @property
    def is_successful(self) -> bool:
        return self.status == PaymentStatus.COMPLETED

    @property
    def formatted_amount(self) -> str:
        return format_amount(self.amount)

    def is_final_status(self) -> bool:
        return self.status in (
            PaymentStatus.FAILED,
            PaymentStatus.CANCELLED,
            PaymentStatus.REFUNDED,
        )

    def refund_blocker(
        self,
        now: Optional[datetime] = None,
        window_days: int = REFUND_WINDOW_DAYS,
    ) -> Optional[str]:
        """Reason a refund is not possible right now, or None."""
        if self.status != PaymentStatus.COMPLETED:
            if self.refund is not None and self.refund.status == RefundStatus.PENDING:
                return "a refund is already in progress"
            return f"payment status is {self.status.value}"
        if self.refund is not None and self.refund.status == RefundStatus.COMPLETED:
            return "payment has already been refunded"
        if self.paid_at is None:
            return "payment has no paid_at timestamp"
        now = _ensure_utc(now) or datetime.now(timezone.utc)
        if (now - self.paid_at).days > window_days:
            return f"refund window of {window_days} days has passed"
        return None

    def can_refund(self, now: Optional[datetime] = None, window_days: int = REFUND_WINDOW_DAYS) -> bool:
        return self.refund_blocker(now, window_days) is None

    # ------------------------------------------------------------------ #
    # Transitions
    # ------------------------------------------------------------------ #
    def _touch(self, now: Optional[datetime] = None) -> datetime:
        self.updated_at = _ensure_utc(now) or datetime.now(timezone.utc)
        return self.updated_at

    def log_attempt(self, ip: Optional[str] = None, user_agent: Optional[str] = None) -> None:
        """Count another attempt and remember who made it; status is untouched."""
        self.attempts += 1
        self.ip = ip
        self.user_agent = user_agent
        self._touch()

    def mark_processing(self, authority: Optional[str] = None) -> None:
        """Gateway accepted the request; the customer is being redirected."""
        if self.status != PaymentStatus.PENDING:
            raise InvalidStateError("payment", self.status.value, PaymentStatus.PROCESSING.value)
        self.status = PaymentStatus.PROCESSING
        if authority:
            self.gateway_data["authority"] = authority
        self._touch()

    def mark_completed(self, transaction_id: str, paid_at: Optional[datetime] = None) -> None:
        if self.status not in (PaymentStatus.PENDING, PaymentStatus.PROCESSING):
            raise InvalidStateError("payment", self.status.value, PaymentStatus.COMPLETED.value)
        if not transaction_id:
            raise ValidationError("transaction_id is required", field="transaction_id")
        self.status = PaymentStatus.COMPLETED
        self.transaction_id = transaction_id
        self.paid_at = _ensure_utc(paid_at) or datetime.now(timezone.utc)
        self.failure_reason = None
        self._touch(self.paid_at)

    def mark_failed(self, reason: Optional[str] = None) -> None:
        if self.status not in (PaymentStatus.PENDING, PaymentStatus.PROCESSING):
            raise InvalidStateError("payment", self.status.value, PaymentStatus.FAILED.value)
        self.status = PaymentStatus.FAILED
        self.failure_reason = reason
        self._touch()

    def mark_cancelled(self, reason: Optional[str] = None) -> None:
        if self.status not in (PaymentStatus.PENDING, PaymentStatus.PROCESSING):
            raise InvalidStateError("payment", self.status.value, PaymentStatus.CANCELLED.value)
        self.status = PaymentStatus.CANCELLED
        self.failure_reason = reason
        self._touch()

    def process_refund(
        self,
        amount: Optional[int] = None,
        reason: Optional[str] = None,
        actor_id: Optional[int] = None,
        *,
        now: Optional[datetime] = None,
        window_days: int = REFUND_WINDOW_DAYS,
    ) -> RefundInfo:
        """Open a refund request; the payment becomes ``refunded`` immediately."""
        blocker = self.refund_blocker(now, window_days)
        if blocker is not None:
            raise RefundNotAllowedError(self.reference_id, blocker)
        if amount is None:
            amount = self.amount
        validate_amount(amount, minimum=1, field="refund_amount")
        if amount > self.amount:
            raise ValidationError(
                f"Refund amount {amount} exceeds payment amount {self.amount}",
                field="refund_amount",
                details={"amount": amount, "payment_amount": self.amount},
            )
        requested_at = self._touch(now)
        self.refund = RefundInfo(
            status=RefundStatus.PENDING,
            amount=amount,
            reason=reason,
            refunded_by=actor_id,
            requested_at=requested_at,
        )
        self.status = PaymentStatus.REFUNDED
        return self.refund

    def complete_refund(self, transaction_id: Optional[str] = None, now: Optional[datetime] = None) -> RefundInfo:
        if self.refund is None or self.refund.status != RefundStatus.PENDING:
            raise RefundNotFoundError(self.reference_id)
        self.refund.status = RefundStatus.COMPLETED
        self.refund.refunded_at = self._touch(now)
        self.refund.transaction_id = transaction_id
        return self.refund
