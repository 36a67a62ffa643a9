from .entity import PriceDrop, Wishlist, WishlistItem
from .repository import WishlistRepository

__all__ = ["PriceDrop", "Wishlist", "WishlistItem", "WishlistRepository"]
