"""
Base gateway client implementing shared concerns: http, error mapping, logging.

Concrete gateways subclass and implement the wire format. Retrying is the
application's job (PaymentService), so clients only classify failures:
transport problems and 5xx answers become PaymentRecoverableError, anything
else the gateway rejects becomes PaymentProviderError.
"""
from __future__ import annotations

from typing import Any, Optional
from contextlib import asynccontextmanager

import httpx

from core.logging_config import get_logger
from application.dtos.payments import GatewayInitiation, GatewayVerification
from application.ports.payment_gateway import PaymentGateway
from domain.common.exceptions import PaymentProviderError, PaymentRecoverableError
from shared.codes.payment_codes import GATEWAY_STATUS_TO_INTERNAL


logger = get_logger(__name__)


class BasePaymentClient(PaymentGateway):
    provider: str = "base"

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 3.0, "write": 3.0, "total": 5.0}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeouts, transport=self._transport)
        try:
            yield self._client
        finally:
            # Keep open for reuse; explicit aclose() will close.
            ...

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _post_json(self, url: str, payload: dict[str, Any], *, operation: str) -> dict[str, Any]:
        try:
            async with self.client() as http:
                resp = await http.post(url, json=payload)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            self._log("gateway_transport_error", operation=operation, error=str(exc))
            raise PaymentRecoverableError(
                f"{self.provider} {operation} transport error: {exc}",
                provider=self.provider,
            ) from exc

        if resp.status_code >= 500:
            self._log("gateway_server_error", operation=operation, http_status=resp.status_code)
            raise PaymentRecoverableError(
                f"{self.provider} {operation} returned HTTP {resp.status_code}",
                provider=self.provider,
                provider_code=str(resp.status_code),
            )
        try:
            data = resp.json()
        except ValueError as exc:
            raise PaymentProviderError(
                f"{self.provider} {operation} returned a non JSON body",
                provider=self.provider,
                provider_code=str(resp.status_code),
            ) from exc
        if resp.status_code >= 400 and not isinstance(data, dict):
            raise PaymentProviderError(
                f"{self.provider} {operation} returned HTTP {resp.status_code}",
                provider=self.provider,
                provider_code=str(resp.status_code),
            )
        return data

    # Default implementations raise to force override where needed
    async def initiate(self, amount: int, description: str, callback_url: str) -> GatewayInitiation:  # type: ignore[override]
        raise NotImplementedError

    async def verify(self, transaction_ref: str, amount: int) -> GatewayVerification:  # type: ignore[override]
        raise NotImplementedError

    # Helpers
    def _map_status(self, gateway_status: Any) -> str:
        mapping = GATEWAY_STATUS_TO_INTERNAL.get(self.provider, {})
        return mapping.get(gateway_status, "unknown")

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
