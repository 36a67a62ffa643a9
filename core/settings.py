"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so payment rules can be tuned
(PAYMENT__MIN_AMOUNT, PAYMENT__RETRY__MAX, ...) without touching app settings.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 3.0
    write: float = 3.0
    total: float = 5.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class ReconcileSettings(BaseModel):
    # Verification attempts before a processing payment is declared failed
    max_attempts: int = 5
    countdown_seconds: int = 60


class ZarinpalSettings(BaseModel):
    merchant_id: Optional[str] = None
    sandbox: bool = True
    request_url: str = "https://api.zarinpal.com/pg/rest/WebGate/PaymentRequest.json"
    verify_url: str = "https://api.zarinpal.com/pg/rest/WebGate/PaymentVerification.json"
    start_pay_url: str = "https://www.zarinpal.com/pg/StartPay/"
    sandbox_request_url: str = "https://sandbox.zarinpal.com/pg/rest/WebGate/PaymentRequest.json"
    sandbox_verify_url: str = "https://sandbox.zarinpal.com/pg/rest/WebGate/PaymentVerification.json"
    sandbox_start_pay_url: str = "https://sandbox.zarinpal.com/pg/StartPay/"


class PaymentSettings(BaseSettings):
    default_gateway: str = Field(default="zarinpal")
    min_amount: int = 1000
    refund_window_days: int = 30
    callback_url: str = "http://localhost:3000/payment/verify"
    # methods customers may pick at checkout
    supported_methods: list[str] = Field(
        default_factory=lambda: ["zarinpal", "mellat", "saman", "payir", "idpay", "cash", "card_to_card"]
    )

    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    reconcile: ReconcileSettings = Field(default_factory=ReconcileSettings)

    zarinpal: ZarinpalSettings = Field(default_factory=ZarinpalSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
