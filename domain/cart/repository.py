"""
Cart and coupon repository interfaces
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Cart, Coupon


class CartRepository(ABC):

    @abstractmethod
    async def get_by_user(self, user_id: int) -> Optional[Cart]:
        """The user's cart, if one was ever saved"""

    @abstractmethod
    async def save(self, cart: Cart) -> Cart:
        """Insert or replace the user's cart (one per user)"""


class CouponRepository(ABC):

    @abstractmethod
    async def create(self, coupon: Coupon) -> Coupon:
        """Persist a new coupon"""

    @abstractmethod
    async def get_by_code(self, code: str) -> Optional[Coupon]:
        """Case-insensitive lookup by code"""

    @abstractmethod
    async def increment_usage(self, code: str) -> None:
        """Count one redemption"""
