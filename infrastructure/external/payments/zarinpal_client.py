"""
Zarinpal gateway client (REST WebGate API).

initiate: PaymentRequest -> Authority, customer is sent to StartPay/<Authority>
verify:   PaymentVerification -> Status 100 (verified) / 101 (verified before), RefID
"""
from __future__ import annotations

from typing import Optional

import httpx

from application.dtos.payments import GatewayInitiation, GatewayVerification
from core.settings import payment_settings, ZarinpalSettings
from domain.common.exceptions import PaymentProviderError
from infrastructure.external.payments.base import BasePaymentClient


class ZarinpalClient(BasePaymentClient):
    provider = "zarinpal"

    def __init__(
        self,
        config: Optional[ZarinpalSettings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(
            timeouts=payment_settings.timeouts.model_dump(),
            transport=transport,
        )
        self.config = config or payment_settings.zarinpal

    @property
    def request_url(self) -> str:
        return self.config.sandbox_request_url if self.config.sandbox else self.config.request_url

    @property
    def verify_url(self) -> str:
        return self.config.sandbox_verify_url if self.config.sandbox else self.config.verify_url

    @property
    def start_pay_url(self) -> str:
        return self.config.sandbox_start_pay_url if self.config.sandbox else self.config.start_pay_url

    async def initiate(self, amount: int, description: str, callback_url: str) -> GatewayInitiation:
        payload = {
            "MerchantID": self.config.merchant_id,
            "Amount": amount,
            "Description": description,
            "CallbackURL": callback_url,
        }
        data = await self._post_json(self.request_url, payload, operation="initiate")
        status = data.get("Status")
        authority = data.get("Authority")
        self._log("gateway_initiate_response", status=status, authority=authority)
        if status != 100 or not authority:
            raise PaymentProviderError(
                f"Zarinpal rejected the payment request: {status}",
                provider=self.provider,
                provider_code=str(status),
            )
        return GatewayInitiation(
            transaction_ref=authority,
            redirect_url=f"{self.start_pay_url}{authority}",
        )

    async def verify(self, transaction_ref: str, amount: int) -> GatewayVerification:
        payload = {
            "MerchantID": self.config.merchant_id,
            "Authority": transaction_ref,
            "Amount": amount,
        }
        data = await self._post_json(self.verify_url, payload, operation="verify")
        status = data.get("Status")
        outcome = self._map_status(status)
        self._log("gateway_verify_response", status=status, outcome=outcome)
        success = outcome == "succeeded"
        ref_id = data.get("RefID")
        return GatewayVerification(
            success=success,
            gateway_transaction_id=str(ref_id) if success and ref_id is not None else None,
            status_code=status if isinstance(status, int) else None,
            card_pan=data.get("CardPan"),
            raw=data,
        )
