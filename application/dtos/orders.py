"""
Order, cart and wishlist DTOs (Pydantic v2).
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from domain.order.entity import (
    CouponType,
    OrderPaymentStatus,
    OrderStatus,
    ShippingMethod,
)


class ShippingAddressDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    receiver: str = Field(min_length=1, max_length=100)
    phone: str = Field(min_length=5, max_length=20)
    province: str = Field(min_length=1, max_length=100)
    city: str = Field(min_length=1, max_length=100)
    address: str = Field(min_length=1, max_length=500)
    postal_code: str = Field(min_length=1, max_length=20)


class PlaceOrderRequest(BaseModel):
    shipping_address: ShippingAddressDTO
    shipping_method: ShippingMethod = ShippingMethod.NORMAL
    notes: Optional[str] = Field(default=None, max_length=1000)


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class ReturnOrderRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class UpdateOrderStatusRequest(BaseModel):
    status: OrderStatus
    note: Optional[str] = Field(default=None, max_length=500)


class OrderItemDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: int
    name: str
    price: int
    discount: int
    final_price: int
    quantity: int


class StatusChangeDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: OrderStatus
    note: Optional[str] = None
    actor_id: Optional[int] = None
    at: Optional[datetime] = None


class CouponDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    discount: int
    type: CouponType
    max_discount: Optional[int] = None


class OrderDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_number: str
    user_id: int
    items: List[OrderItemDTO]
    shipping_address: ShippingAddressDTO
    shipping_method: ShippingMethod
    shipping_cost: int
    coupon: Optional[CouponDTO] = None
    status: OrderStatus
    payment_status: OrderPaymentStatus
    status_history: List[StatusChangeDTO] = []
    subtotal: int
    total_discount: int
    total_amount: int
    transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    return_reason: Optional[str] = None
    created_at: Optional[datetime] = None


class AddCartItemRequest(BaseModel):
    product_id: int = Field(gt=0)
    quantity: int = Field(default=1, ge=1, le=1000)


class UpdateCartItemRequest(BaseModel):
    quantity: int = Field(ge=1, le=1000)


class ApplyCouponRequest(BaseModel):
    code: str = Field(min_length=4, max_length=20)


class CartItemDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: int
    name: str
    quantity: int
    price: int
    discount: int
    final_price: int
    line_total: int


class CartDTO(BaseModel):
    user_id: int
    items: List[CartItemDTO]
    coupon: Optional[CouponDTO] = None
    total_items: int
    subtotal: int
    item_discount: int
    coupon_discount: int
    total: int

    @classmethod
    def from_cart(cls, cart) -> "CartDTO":
        totals = cart.totals()
        return cls(
            user_id=cart.user_id,
            items=[CartItemDTO.model_validate(i) for i in cart.items],
            coupon=CouponDTO.model_validate(cart.coupon) if cart.coupon else None,
            total_items=totals.total_items,
            subtotal=totals.subtotal,
            item_discount=totals.item_discount,
            coupon_discount=totals.coupon_discount,
            total=totals.total,
        )


class AddWishlistItemRequest(BaseModel):
    product_id: int = Field(gt=0)
    target_price: Optional[int] = Field(default=None, ge=0)
    notify_on_discount: bool = False
    notify_on_available: bool = False


class WishlistItemDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: int
    target_price: Optional[int] = None
    notify_on_discount: bool
    notify_on_available: bool
    added_at: Optional[datetime] = None


class WishlistDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    items: List[WishlistItemDTO]
    is_public: bool
    share_token: Optional[str] = None

    @classmethod
    def from_wishlist(cls, wishlist) -> "WishlistDTO":
        return cls(
            user_id=wishlist.user_id,
            items=[WishlistItemDTO.model_validate(i) for i in wishlist.sorted_items()],
            is_public=wishlist.is_public,
            share_token=wishlist.share_token,
        )


class PriceDropDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: int
    current_price: int
    discount: int
    target_price: Optional[int] = None
