"""
Cart and coupon domain entities
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from domain.catalog.entity import Product
from domain.common.exceptions import (
    CartItemNotFoundError,
    CouponInvalidError,
    InsufficientStockError,
    ProductNotFoundError,
    ValidationError,
)
from domain.common.money import percent_of, validate_amount
from domain.order.entity import CouponSnapshot, CouponType, OrderItem


CART_TTL_DAYS = 30


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps (SQLite drops the offset) are taken as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Coupon:
    """Discount code. Only a ``CouponSnapshot`` travels into carts and orders."""

    id: Optional[int]
    code: str
    type: CouponType
    discount: int
    valid_from: datetime
    valid_until: datetime
    minimum_amount: int = 0
    maximum_discount: Optional[int] = None
    usage_limit: Optional[int] = None
    used_count: int = 0
    is_active: bool = True
    description: Optional[str] = None

    def __post_init__(self):
        self.code = (self.code or "").strip().upper()
        if not 4 <= len(self.code) <= 20:
            raise ValidationError("coupon code must be 4-20 characters", field="code")
        self.type = CouponType(self.type)
        self.valid_from = _ensure_utc(self.valid_from)
        self.valid_until = _ensure_utc(self.valid_until)
        if self.discount < 0 or (self.type == CouponType.PERCENTAGE and self.discount > 100):
            raise ValidationError("coupon discount out of range", field="discount")
        if self.valid_until <= self.valid_from:
            raise ValidationError("valid_until must be after valid_from", field="valid_until")

    @property
    def remaining_uses(self) -> Optional[int]:
        if self.usage_limit is None:
            return None
        return max(0, self.usage_limit - self.used_count)

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        now = _ensure_utc(now) or _now()
        return (
            self.is_active
            and self.valid_from <= now <= self.valid_until
            and (self.usage_limit is None or self.used_count < self.usage_limit)
        )

    def check(self, amount: int, now: Optional[datetime] = None) -> None:
        """Raise CouponInvalidError unless the coupon applies to ``amount``."""
        now = _ensure_utc(now) or _now()
        if not self.is_active or not self.valid_from <= now <= self.valid_until:
            raise CouponInvalidError(self.code, "coupon is not active")
        if self.usage_limit is not None and self.used_count >= self.usage_limit:
            raise CouponInvalidError(self.code, "usage limit reached")
        if amount < self.minimum_amount:
            raise CouponInvalidError(self.code, f"minimum purchase is {self.minimum_amount}")

    def snapshot(self) -> CouponSnapshot:
        return CouponSnapshot(
            code=self.code,
            discount=self.discount,
            type=self.type,
            max_discount=self.maximum_discount,
        )


@dataclass
class CartItem:
    product_id: int
    name: str
    quantity: int
    price: int
    discount: int = 0
    added_at: Optional[datetime] = None

    def __post_init__(self):
        validate_amount(self.quantity, minimum=1, field="quantity")

    @property
    def final_price(self) -> int:
        return self.price - percent_of(self.price, self.discount)

    @property
    def line_total(self) -> int:
        return self.final_price * self.quantity


@dataclass
class CartTotals:
    total_items: int
    subtotal: int
    item_discount: int
    coupon_discount: int
    total: int


@dataclass
class Cart:
    """
    Per-user cart.

    At most one line per product: adding a product that is already in the
    cart increases its quantity.
    """

    user_id: int
    items: List[CartItem] = field(default_factory=list)
    coupon: Optional[CouponSnapshot] = None
    id: Optional[int] = None
    expires_at: Optional[datetime] = None
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def _touch(self) -> None:
        self.updated_at = _now()
        self.expires_at = self.updated_at + timedelta(days=CART_TTL_DAYS)

    def find(self, product_id: int) -> Optional[CartItem]:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    @property
    def is_empty(self) -> bool:
        return not self.items

    def add_item(self, product: Product, quantity: int = 1) -> CartItem:
        validate_amount(quantity, minimum=1, field="quantity")
        item = self.find(product.id)
        wanted = quantity + (item.quantity if item else 0)
        if not product.has_available(wanted):
            raise InsufficientStockError([{
                "product_id": product.id,
                "requested": wanted,
                "available": product.stock.quantity,
            }])
        if item is None:
            item = CartItem(
                product_id=product.id,
                name=product.name,
                quantity=quantity,
                price=product.price,
                discount=product.discount,
                added_at=_now(),
            )
            self.items.append(item)
        else:
            item.quantity = wanted
            item.price = product.price
            item.discount = product.discount
        self._touch()
        return item

    def update_item(self, product: Product, quantity: int) -> CartItem:
        validate_amount(quantity, minimum=1, field="quantity")
        item = self.find(product.id)
        if item is None:
            raise CartItemNotFoundError(product.id)
        if not product.has_available(quantity):
            raise InsufficientStockError([{
                "product_id": product.id,
                "requested": quantity,
                "available": product.stock.quantity,
            }])
        item.quantity = quantity
        self._touch()
        return item

    def remove_item(self, product_id: int) -> None:
        item = self.find(product_id)
        if item is None:
            raise CartItemNotFoundError(product_id)
        self.items.remove(item)
        self._touch()

    def clear(self) -> None:
        self.items = []
        self.coupon = None
        self._touch()

    def apply_coupon(self, coupon: Coupon, now: Optional[datetime] = None) -> CouponSnapshot:
        coupon.check(self.totals().subtotal - self.totals().item_discount, now)
        self.coupon = coupon.snapshot()
        self._touch()
        return self.coupon

    def remove_coupon(self) -> None:
        self.coupon = None
        self._touch()

    def totals(self) -> CartTotals:
        subtotal = sum(item.price * item.quantity for item in self.items)
        after_items = sum(item.line_total for item in self.items)
        coupon_discount = self.coupon.discount_for(after_items) if self.coupon else 0
        return CartTotals(
            total_items=sum(item.quantity for item in self.items),
            subtotal=subtotal,
            item_discount=subtotal - after_items,
            coupon_discount=coupon_discount,
            total=after_items - coupon_discount,
        )

    def refresh(self, products: Dict[int, Product]) -> bool:
        """Re-sync prices with the catalog and drop or trim unavailable lines."""
        changed = False
        kept: List[CartItem] = []
        for item in self.items:
            product = products.get(item.product_id)
            if product is None or product.stock.quantity == 0:
                changed = True
                continue
            if (item.price, item.discount) != (product.price, product.discount):
                item.price, item.discount = product.price, product.discount
                changed = True
            if item.quantity > product.stock.quantity:
                item.quantity = product.stock.quantity
                changed = True
            kept.append(item)
        if changed:
            self.items = kept
            self._touch()
        return changed

    def to_order_items(self, products: Dict[int, Product]) -> List[OrderItem]:
        """Freeze the cart into order line items at current catalog prices."""
        if self.is_empty:
            raise ValidationError("cart is empty", field="items")
        order_items = []
        for item in self.items:
            product = products.get(item.product_id)
            if product is None:
                raise ProductNotFoundError(item.product_id)
            order_items.append(OrderItem(
                product_id=product.id,
                name=product.name,
                price=product.price,
                discount=product.discount,
                quantity=item.quantity,
            ))
        return order_items
