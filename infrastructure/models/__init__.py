"""Infrastructure models package exports."""
from .base import Base, metadata
from .payment import PaymentModel
from .product import ProductModel
from .order import OrderModel, OrderItemModel
from .cart import (
    CartModel,
    CartItemModel,
    CouponModel,
    WishlistModel,
    WishlistItemModel,
)

__all__ = [
    "Base",
    "metadata",
    "PaymentModel",
    "ProductModel",
    "OrderModel",
    "OrderItemModel",
    "CartModel",
    "CartItemModel",
    "CouponModel",
    "WishlistModel",
    "WishlistItemModel",
]
