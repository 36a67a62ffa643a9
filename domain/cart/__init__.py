from .entity import Cart, CartItem, CartTotals, Coupon
from .repository import CartRepository, CouponRepository

__all__ = ["Cart", "CartItem", "CartTotals", "Coupon", "CartRepository", "CouponRepository"]
