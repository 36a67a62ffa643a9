"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field, ConfigDict

from domain.payment.entity import PaymentMethod, PaymentStatus, RefundStatus


class GatewayInitiation(BaseModel):
    """Gateway answer to an initiate call."""
    transaction_ref: str
    redirect_url: str


class GatewayVerification(BaseModel):
    """Gateway answer to a verify call."""
    success: bool
    gateway_transaction_id: Optional[str] = None
    status_code: Optional[int] = None
    card_pan: Optional[str] = None
    raw: Optional[dict[str, Any]] = None


class InitiatePaymentRequest(BaseModel):
    order_id: int = Field(gt=0)
    method: PaymentMethod = PaymentMethod.ZARINPAL


class InitiatePaymentResponse(BaseModel):
    payment_id: int
    reference_id: str
    redirect_url: str
    authority: str
    amount: int


class VerifyPaymentRequest(BaseModel):
    reference_id: str = Field(min_length=1)
    authority: str = Field(min_length=1, description="gateway token returned on the callback")
    status: str = Field(default="OK", description="gateway callback status, OK or NOK")


class PaymentResult(BaseModel):
    success: bool
    status: PaymentStatus
    reference_id: str
    order_id: int
    amount: int
    transaction_id: Optional[str] = None
    message: Optional[str] = None


class RefundRequestBody(BaseModel):
    amount: Optional[int] = Field(default=None, gt=0)
    reason: Optional[str] = Field(default=None, max_length=500)


class CompleteRefundBody(BaseModel):
    transaction_id: Optional[str] = Field(default=None, max_length=100)


class RefundDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: RefundStatus
    amount: int
    reason: Optional[str] = None
    refunded_by: Optional[int] = None
    requested_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    transaction_id: Optional[str] = None


class PaymentDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    user_id: int
    amount: int
    formatted_amount: str
    method: PaymentMethod
    status: PaymentStatus
    reference_id: str
    transaction_id: Optional[str] = None
    description: Optional[str] = None
    paid_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    attempts: int
    refund: Optional[RefundDTO] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RevenueDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_revenue: int
    total_payments: int
    avg_payment: float


class MethodStatsDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    method: str
    count: int
    total_amount: int
    avg_amount: float
