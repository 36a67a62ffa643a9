"""
Inventory adjuster - moves stock for whole orders, all or nothing
"""
from typing import Dict

from domain.catalog.repository import ProductRepository
from domain.common.exceptions import InsufficientStockError
from domain.order.entity import Order


class InventoryAdjuster:
    """
    Decrement and restore stock against an order's line items.

    Both operations run inside the caller's unit of work; the caller persists
    the order afterwards so the inventory flags commit together with the
    stock rows.
    """

    def __init__(self, product_repository: ProductRepository):
        self.product_repository = product_repository

    async def check_availability(self, deltas: Dict[int, int]) -> None:
        """Dry run: raise InsufficientStockError listing every short product."""
        products = await self.product_repository.get_many(deltas.keys())
        shortages = []
        for product_id, quantity in deltas.items():
            product = products.get(product_id)
            if product is None:
                shortages.append({"product_id": product_id, "requested": quantity, "available": 0})
            elif not product.has_available(quantity):
                shortages.append({
                    "product_id": product_id,
                    "requested": quantity,
                    "available": product.stock.quantity,
                })
        if shortages:
            raise InsufficientStockError(shortages)

    async def decrement(self, order: Order) -> None:
        """
        Take the order's quantities out of stock.

        Each product is decremented with a compare-and-decrement. If one of
        them loses a race after the dry run, the products already decremented
        are put back before InsufficientStockError is raised, so no product
        is left changed.
        """
        deltas = order.stock_deltas()
        await self.check_availability(deltas)

        done: Dict[int, int] = {}
        for product_id, quantity in deltas.items():
            if not await self.product_repository.try_decrement_stock(product_id, quantity):
                for rolled_id, rolled_qty in done.items():
                    await self.product_repository.increment_stock(rolled_id, rolled_qty)
                product = await self.product_repository.get_by_id(product_id)
                raise InsufficientStockError([{
                    "product_id": product_id,
                    "requested": quantity,
                    "available": product.stock.quantity if product else 0,
                }])
            done[product_id] = quantity
        order.mark_inventory_committed()

    async def restore(self, order: Order) -> bool:
        """Put the order's quantities back. Returns False when there is nothing to do."""
        if not order.mark_inventory_restored():
            return False
        for product_id, quantity in order.stock_deltas().items():
            await self.product_repository.increment_stock(product_id, quantity)
        return True
