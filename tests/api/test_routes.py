import asyncio

import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_gateway, get_task_scheduler, get_uow_factory
from main import app


CUSTOMER = {"X-User-ID": "7"}
ADMIN = {"X-User-ID": "1", "X-User-Role": "admin"}


@pytest.fixture
def client(uow_factory, gateway, scheduler):
    app.dependency_overrides[get_uow_factory] = lambda: uow_factory
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_task_scheduler] = lambda: scheduler
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_routes_are_registered():
    paths = {route.path for route in app.routes}
    for path in (
        "/api/v1/payments/initiate",
        "/api/v1/payments/verify",
        "/api/v1/payments/callback",
        "/api/v1/payments/{payment_id}/refund",
        "/api/v1/orders",
        "/api/v1/orders/{order_id}/cancel",
        "/api/v1/cart/items",
        "/api/v1/wishlist/shared/{token}",
        "/health",
    ):
        assert path in paths


def test_missing_identity_is_unauthorized(client):
    resp = client.get("/api/v1/cart")
    assert resp.status_code == 401
    body = resp.json()
    assert body["error"]["type"] == "Unauthorized"
    assert body["data"] is None


def test_admin_routes_require_admin_role(client):
    assert client.get("/api/v1/payments/stats/revenue", headers=CUSTOMER).status_code == 403
    resp = client.get("/api/v1/payments/stats/revenue", headers=ADMIN)
    assert resp.status_code == 200
    assert resp.json()["data"]["total_payments"] == 0


def test_unknown_product_is_not_found(client):
    resp = client.post("/api/v1/cart/items", json={"product_id": 999, "quantity": 1}, headers=CUSTOMER)
    assert resp.status_code == 404


def test_invalid_body_is_unprocessable(client):
    resp = client.post("/api/v1/cart/items", json={"product_id": 0}, headers=CUSTOMER)
    assert resp.status_code == 422


def test_checkout_and_payment_flow(client, seed, address):
    product = asyncio.run(seed.product(price=300000, stock=3))

    resp = client.post("/api/v1/cart/items", json={"product_id": product.id, "quantity": 2}, headers=CUSTOMER)
    assert resp.status_code == 200
    assert resp.json()["data"]["total"] == 600000

    resp = client.post(
        "/api/v1/orders",
        json={"shipping_address": address.__dict__, "shipping_method": "normal"},
        headers=CUSTOMER,
    )
    assert resp.status_code == 200
    order = resp.json()["data"]
    assert order["total_amount"] == 600000
    assert asyncio.run(seed.stock_of(product.id)) == 1

    resp = client.post("/api/v1/payments/initiate", json={"order_id": order["id"]}, headers=CUSTOMER)
    assert resp.status_code == 200
    started = resp.json()["data"]
    assert started["redirect_url"].startswith("https://gateway.test/StartPay/")

    resp = client.get(
        "/api/v1/payments/callback",
        params={"reference_id": started["reference_id"], "Authority": started["authority"], "Status": "OK"},
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["success"] is True

    resp = client.get(f"/api/v1/orders/{order['id']}", headers=CUSTOMER)
    assert resp.json()["data"]["payment_status"] == "completed"
    assert client.get("/api/v1/cart", headers=CUSTOMER).json()["data"]["items"] == []

    other = client.get(f"/api/v1/orders/{order['id']}", headers={"X-User-ID": "8"})
    assert other.status_code == 404


def test_oversized_order_reports_shortage(client, seed, address):
    product = asyncio.run(seed.product(stock=1))
    client.post("/api/v1/cart/items", json={"product_id": product.id, "quantity": 1}, headers=CUSTOMER)

    async def drain():
        async with seed.uow_factory() as uow:
            await uow.product_repository.try_decrement_stock(product.id, 1)

    asyncio.run(drain())
    resp = client.post("/api/v1/orders", json={"shipping_address": address.__dict__}, headers=CUSTOMER)
    assert resp.status_code == 409
    assert resp.json()["error"]["type"] == "InsufficientStockError"
