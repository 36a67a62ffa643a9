"""
Factory for payment gateway clients.
"""
from __future__ import annotations

from typing import Optional

from core.settings import payment_settings
from application.ports.payment_gateway import PaymentGateway


def get_payment_gateway(gateway: Optional[str] = None) -> PaymentGateway:
    name = (gateway or payment_settings.default_gateway).lower()
    if name == "zarinpal":
        from .zarinpal_client import ZarinpalClient
        return ZarinpalClient()
    raise ValueError(f"Unsupported payment gateway: {name}")
