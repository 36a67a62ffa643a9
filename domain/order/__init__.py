from .entity import (
    CouponSnapshot,
    CouponType,
    Order,
    OrderItem,
    OrderPaymentStatus,
    OrderStatus,
    ShippingAddress,
    ShippingMethod,
    StatusChange,
    generate_order_number,
)
from .repository import OrderRepository

__all__ = [
    "CouponSnapshot",
    "CouponType",
    "Order",
    "OrderItem",
    "OrderPaymentStatus",
    "OrderStatus",
    "ShippingAddress",
    "ShippingMethod",
    "StatusChange",
    "generate_order_number",
    "OrderRepository",
]
