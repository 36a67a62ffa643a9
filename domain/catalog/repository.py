"""
Product repository interface (catalog capability used by the order core)
"""
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional

from .entity import Product


class ProductRepository(ABC):

    @abstractmethod
    async def create(self, product: Product) -> Product:
        """Persist a new product"""

    @abstractmethod
    async def get_by_id(self, product_id: int) -> Optional[Product]:
        """Get a product by id"""

    @abstractmethod
    async def get_many(self, product_ids: Iterable[int]) -> Dict[int, Product]:
        """Products keyed by id; unknown ids are simply absent"""

    @abstractmethod
    async def try_decrement_stock(self, product_id: int, quantity: int) -> bool:
        """Compare-and-decrement.

        Atomically subtract ``quantity`` from stock and add it to ``sold``
        only if the stock would stay non-negative. Returns False (and changes
        nothing) otherwise.
        """

    @abstractmethod
    async def increment_stock(self, product_id: int, quantity: int) -> None:
        """Put ``quantity`` back into stock and take it off ``sold`` (floored at 0)"""
