import json

import httpx
import pytest

from core.settings import ZarinpalSettings
from domain.common.exceptions import PaymentProviderError, PaymentRecoverableError
from infrastructure.external.payments.zarinpal_client import ZarinpalClient


def _client(handler) -> ZarinpalClient:
    config = ZarinpalSettings(merchant_id="XXXXXXXX-XXXX-XXXX-XXXX-XXXXXXXXXXXX")
    return ZarinpalClient(config, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_initiate_posts_request_and_builds_redirect():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"Status": 100, "Authority": "A00000000000000000000000000000123456"})

    client = _client(handler)
    result = await client.initiate(150000, "Payment for order ORD-1", "https://shop.test/verify")
    await client.aclose()

    assert seen["url"] == "https://sandbox.zarinpal.com/pg/rest/WebGate/PaymentRequest.json"
    assert seen["body"]["Amount"] == 150000
    assert seen["body"]["CallbackURL"] == "https://shop.test/verify"
    assert result.transaction_ref == "A00000000000000000000000000000123456"
    assert result.redirect_url == "https://sandbox.zarinpal.com/pg/StartPay/A00000000000000000000000000000123456"


@pytest.mark.asyncio
async def test_initiate_rejection_is_provider_error():
    client = _client(lambda request: httpx.Response(200, json={"Status": -11, "Authority": ""}))
    with pytest.raises(PaymentProviderError) as exc_info:
        await client.initiate(150000, "x", "https://shop.test/verify")
    assert exc_info.value.details["provider_code"] == "-11"


@pytest.mark.asyncio
async def test_server_error_is_recoverable():
    client = _client(lambda request: httpx.Response(503, text="maintenance"))
    with pytest.raises(PaymentRecoverableError):
        await client.initiate(150000, "x", "https://shop.test/verify")


@pytest.mark.asyncio
async def test_transport_error_is_recoverable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)
    with pytest.raises(PaymentRecoverableError):
        await client.verify("A1", 150000)


@pytest.mark.asyncio
async def test_non_json_body_is_provider_error():
    client = _client(lambda request: httpx.Response(200, text="<html>oops</html>"))
    with pytest.raises(PaymentProviderError):
        await client.verify("A1", 150000)


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [100, 101])
async def test_verify_success_codes(status):
    client = _client(lambda request: httpx.Response(
        200, json={"Status": status, "RefID": 12345678, "CardPan": "6037-99**-****-1234"}
    ))
    result = await client.verify("A1", 150000)
    assert result.success is True
    assert result.gateway_transaction_id == "12345678"
    assert result.card_pan == "6037-99**-****-1234"


@pytest.mark.asyncio
async def test_verify_failure_keeps_status_code():
    client = _client(lambda request: httpx.Response(200, json={"Status": -21}))
    result = await client.verify("A1", 150000)
    assert result.success is False
    assert result.gateway_transaction_id is None
    assert result.status_code == -21
