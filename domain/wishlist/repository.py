"""
Wishlist repository interface
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Wishlist


class WishlistRepository(ABC):

    @abstractmethod
    async def get_by_user(self, user_id: int) -> Optional[Wishlist]:
        """The user's wishlist, if any"""

    @abstractmethod
    async def get_by_share_token(self, token: str) -> Optional[Wishlist]:
        """A public wishlist by its share token"""

    @abstractmethod
    async def save(self, wishlist: Wishlist) -> Wishlist:
        """Insert or replace the user's wishlist"""
