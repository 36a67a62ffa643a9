import asyncio

import pytest

from domain.common.exceptions import InsufficientStockError
from domain.inventory.service import InventoryAdjuster
from domain.order.entity import Order, OrderItem


def _order(address, quantities) -> Order:
    return Order.place(
        order_number="ORD-TEST",
        user_id=7,
        items=[OrderItem(product_id=pid, name=str(pid), price=1000, quantity=qty) for pid, qty in quantities.items()],
        shipping_address=address,
    )


@pytest.mark.asyncio
async def test_decrement_is_all_or_nothing(uow_factory, seed, address):
    a = await seed.product("A", stock=10)
    b = await seed.product("B", stock=5)
    order = _order(address, {a.id: 3, b.id: 1000})

    with pytest.raises(InsufficientStockError) as exc:
        async with uow_factory() as uow:
            await InventoryAdjuster(uow.product_repository).decrement(order)

    assert exc.value.shortages == [{"product_id": b.id, "requested": 1000, "available": 5}]
    assert await seed.stock_of(a.id) == 10
    assert await seed.stock_of(b.id) == 5
    assert order.inventory_committed is False


@pytest.mark.asyncio
async def test_restore_twice_moves_stock_once(uow_factory, seed, address):
    product = await seed.product(stock=10)
    order = await seed.order(7, {product.id: 4})
    assert await seed.stock_of(product.id) == 6

    for _ in range(2):
        async with uow_factory() as uow:
            loaded = await uow.order_repository.get_by_id(order.id)
            await InventoryAdjuster(uow.product_repository).restore(loaded)
            await uow.order_repository.update(loaded)

    assert await seed.stock_of(product.id) == 10


@pytest.mark.asyncio
async def test_restore_without_commit_is_noop(uow_factory, seed, address):
    product = await seed.product(stock=10)
    order = _order(address, {product.id: 4})
    async with uow_factory() as uow:
        assert await InventoryAdjuster(uow.product_repository).restore(order) is False
    assert await seed.stock_of(product.id) == 10


@pytest.mark.asyncio
async def test_concurrent_decrements_never_oversell(uow_factory, seed, address):
    product = await seed.product(stock=5)

    async def buy():
        order = _order(address, {product.id: 2})
        async with uow_factory() as uow:
            await InventoryAdjuster(uow.product_repository).decrement(order)

    results = await asyncio.gather(*(buy() for _ in range(4)), return_exceptions=True)

    assert sum(1 for r in results if r is None) == 2
    assert all(isinstance(r, InsufficientStockError) for r in results if r is not None)
    assert await seed.stock_of(product.id) == 1


@pytest.mark.asyncio
async def test_rollback_undoes_stock_changes(uow_factory, seed, address):
    product = await seed.product(stock=5)
    with pytest.raises(RuntimeError):
        async with uow_factory() as uow:
            await InventoryAdjuster(uow.product_repository).decrement(_order(address, {product.id: 3}))
            raise RuntimeError("boom")
    assert await seed.stock_of(product.id) == 5
