"""
Order repository interface
"""
from abc import ABC, abstractmethod
from datetime import date
from typing import List, Optional

from .entity import Order, OrderStatus


class OrderRepository(ABC):
    """Order persistence contract.

    ``update`` follows the same optimistic rule as payments: the stored
    version must equal ``order.version``; it is bumped on success, otherwise
    ConcurrentModificationError is raised.
    """

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """Persist a new order with its line items"""

    @abstractmethod
    async def get_by_id(self, order_id: int) -> Optional[Order]:
        """Get an order by id"""

    @abstractmethod
    async def get_by_number(self, order_number: str) -> Optional[Order]:
        """Get an order by its order number"""

    @abstractmethod
    async def list_by_user(
        self,
        user_id: int,
        skip: int = 0,
        limit: int = 10,
        status: Optional[OrderStatus] = None,
    ) -> List[Order]:
        """Orders of a user, newest first"""

    @abstractmethod
    async def count_by_user(self, user_id: int, status: Optional[OrderStatus] = None) -> int:
        """Count orders of a user"""

    @abstractmethod
    async def next_sequence(self, day: date) -> int:
        """Next per-day order number sequence (1-based)"""

    @abstractmethod
    async def update(self, order: Order) -> Order:
        """Optimistically write back a loaded order"""

    @abstractmethod
    async def list_awaiting_restock(self, limit: int = 100) -> List[Order]:
        """Orders with a refunded payment whose stock is still out, oldest first"""
