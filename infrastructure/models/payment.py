"""
Payment ORM model - SQLAlchemy mapping
Note: this is an infrastructure detail, not the domain model
"""
from sqlalchemy import (
    Column, Integer, BigInteger, String, DateTime, Text, JSON, Index
)
from datetime import datetime, timezone

from .base import Base


class PaymentModel(Base):
    """
    Payment table mapping

    No business logic lives here; the rules are in
    domain.payment.entity.Payment. The single refund request of a payment is
    stored in the ``refund_*`` columns.
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)

    # ownership
    order_id = Column(Integer, nullable=False, index=True, comment="order id")
    user_id = Column(Integer, nullable=False, index=True, comment="user id")

    # amount in minor units
    amount = Column(BigInteger, nullable=False, comment="payment amount")
    method = Column(String(30), nullable=False, comment="zarinpal/mellat/saman/payir/idpay/cash/card_to_card")
    status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="pending/processing/completed/failed/cancelled/refunded"
    )

    reference_id = Column(String(40), nullable=False, unique=True, index=True, comment="public reference")
    transaction_id = Column(String(100), nullable=True, index=True, comment="gateway transaction id")
    description = Column(String(500), nullable=True)
    failure_reason = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=1)
    ip = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    gateway_data = Column(JSON, nullable=True, comment="authority / ref id / card pan")
    extra_metadata = Column("metadata", JSON, nullable=True)

    # refund sub-record
    refund_status = Column(String(20), nullable=True, comment="pending/processing/completed/failed")
    refund_amount = Column(BigInteger, nullable=True)
    refund_reason = Column(Text, nullable=True)
    refunded_by = Column(Integer, nullable=True)
    refund_requested_at = Column(DateTime(timezone=True), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)
    refund_transaction_id = Column(String(100), nullable=True)

    version = Column(Integer, nullable=False, default=0, comment="optimistic lock")

    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_payments_order_user", "order_id", "user_id"),
        Index("ix_payments_user_status", "user_id", "status"),
    )

    def __repr__(self):
        return (
            f"<PaymentModel(id={self.id}, reference_id='{self.reference_id}', "
            f"amount={self.amount}, status='{self.status}')>"
        )
