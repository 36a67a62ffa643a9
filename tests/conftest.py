"""Pytest bootstrap configuration.

Environment variables are set before any application module is imported,
since settings objects are built at import time.
"""
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PAYMENT__RETRY__BASE_BACKOFF", "0")
os.environ.setdefault("PAYMENT__RECONCILE__COUNTDOWN_SECONDS", "0")

import asyncio
from typing import Dict, List, Optional

import pytest

from application.dtos.payments import GatewayInitiation, GatewayVerification
from core.settings import PaymentRetry, PaymentSettings, PaymentTimeouts, ReconcileSettings
from domain.catalog.entity import Product, StockLevel
from domain.inventory.service import InventoryAdjuster
from domain.order.entity import Order, OrderItem, ShippingAddress, generate_order_number
from infrastructure.memory import InMemoryStore, InMemoryUnitOfWorkFactory


class StubGateway:
    """Scriptable gateway: queue errors or set the next verification."""

    provider = "stub"

    def __init__(self) -> None:
        self.initiate_errors: List[Exception] = []
        self.verify_errors: List[Exception] = []
        self.verification = GatewayVerification(
            success=True, gateway_transaction_id="TX-1001", status_code=100, card_pan="6037-99**-****-1234"
        )
        self.delay = 0.0
        self.initiate_calls = 0
        self.verify_calls = 0
        self.closed = False

    async def initiate(self, amount: int, description: str, callback_url: str) -> GatewayInitiation:
        self.initiate_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.initiate_errors:
            raise self.initiate_errors.pop(0)
        authority = f"A{self.initiate_calls:035d}"
        return GatewayInitiation(transaction_ref=authority, redirect_url=f"https://gateway.test/StartPay/{authority}")

    async def verify(self, transaction_ref: str, amount: int) -> GatewayVerification:
        self.verify_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.verify_errors:
            raise self.verify_errors.pop(0)
        return self.verification

    async def aclose(self) -> None:
        self.closed = True


class RecordingScheduler:
    def __init__(self) -> None:
        self.reconciles: List[int] = []
        self.resumes: List[int] = []

    def schedule_reconcile(self, payment_id: int, countdown: Optional[int] = None) -> None:
        self.reconciles.append(payment_id)

    def schedule_refund_resume(self, payment_id: int, countdown: Optional[int] = None) -> None:
        self.resumes.append(payment_id)


ADDRESS = ShippingAddress(
    receiver="Sara Ahmadi",
    phone="09120000000",
    province="Tehran",
    city="Tehran",
    address="No. 12, Valiasr St.",
    postal_code="1234567890",
)


class Seeder:
    """Writes fixtures straight through the in-memory repositories."""

    def __init__(self, uow_factory: InMemoryUnitOfWorkFactory) -> None:
        self.uow_factory = uow_factory

    async def product(self, name: str = "Tea", price: int = 100000, stock: int = 10, discount: int = 0) -> Product:
        async with self.uow_factory() as uow:
            return await uow.product_repository.create(
                Product(id=None, name=name, price=price, discount=discount, stock=StockLevel(quantity=stock))
            )

    async def stock_of(self, product_id: int) -> int:
        async with self.uow_factory(readonly=True) as uow:
            return (await uow.product_repository.get_by_id(product_id)).stock.quantity

    async def order(self, user_id: int, quantities: Dict[int, int], shipping_cost: int = 0) -> Order:
        """Place an order for ``{product_id: qty}`` with stock taken out."""
        async with self.uow_factory() as uow:
            products = await uow.product_repository.get_many(quantities)
            items = [
                OrderItem(product_id=pid, name=products[pid].name, price=products[pid].price,
                          discount=products[pid].discount, quantity=qty)
                for pid, qty in quantities.items()
            ]
            order = Order.place(
                order_number="pending",
                user_id=user_id,
                items=items,
                shipping_address=ADDRESS,
                shipping_cost=shipping_cost,
            )
            await InventoryAdjuster(uow.product_repository).decrement(order)
            day = order.created_at.date()
            order.order_number = generate_order_number(day, await uow.order_repository.next_sequence(day))
            return await uow.order_repository.create(order)

    async def get_order(self, order_id: int) -> Order:
        async with self.uow_factory(readonly=True) as uow:
            return await uow.order_repository.get_by_id(order_id)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def uow_factory(store) -> InMemoryUnitOfWorkFactory:
    return InMemoryUnitOfWorkFactory(store)


@pytest.fixture
def gateway() -> StubGateway:
    return StubGateway()


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture
def seed(uow_factory) -> Seeder:
    return Seeder(uow_factory)


@pytest.fixture
def payment_config() -> PaymentSettings:
    return PaymentSettings(
        min_amount=1000,
        refund_window_days=30,
        timeouts=PaymentTimeouts(total=0.5),
        retry=PaymentRetry(max=2, base_backoff=0),
        reconcile=ReconcileSettings(max_attempts=3, countdown_seconds=0),
    )


@pytest.fixture
def address() -> ShippingAddress:
    return ADDRESS
