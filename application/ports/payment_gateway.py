"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from application.dtos.payments import GatewayInitiation, GatewayVerification


@runtime_checkable
class PaymentGateway(Protocol):
    """Redirect-style gateway: initiate, send the customer away, verify on return.

    Implementations should be async and side-effect free beyond IO.
    """

    provider: str

    async def initiate(self, amount: int, description: str, callback_url: str) -> GatewayInitiation: ...

    async def verify(self, transaction_ref: str, amount: int) -> GatewayVerification: ...

    async def aclose(self) -> None: ...
