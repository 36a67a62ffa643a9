"""
Order domain entity - order aggregate root with frozen line items
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional

from domain.common.exceptions import InvalidStateError, ValidationError
from domain.common.money import percent_of, validate_amount


RETURN_WINDOW_DAYS = 7


class OrderStatus(str, Enum):
    PENDING = "pending"          # awaiting payment
    PROCESSING = "processing"    # paid, not yet packed
    PACKAGED = "packaged"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class OrderPaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REFUNDED = "refunded"


class ShippingMethod(str, Enum):
    NORMAL = "normal"
    EXPRESS = "express"
    SCHEDULED = "scheduled"


class CouponType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.PACKAGED, OrderStatus.CANCELLED},
    OrderStatus.PACKAGED: {OrderStatus.SHIPPED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.RETURNED},
    OrderStatus.DELIVERED: {OrderStatus.RETURNED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.RETURNED: set(),
}

# Fulfillment has not started yet, so the order can still be cancelled.
CANCELLABLE_STATUSES = {OrderStatus.PENDING, OrderStatus.PROCESSING}


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def generate_order_number(day: date, sequence: int) -> str:
    """``ORD-YYMMDD-NNNN`` with a per-day sequence starting at 1."""
    return f"ORD-{day:%y%m%d}-{sequence:04d}"


@dataclass
class OrderItem:
    """Line item; price and discount are copies taken at checkout."""

    product_id: int
    name: str
    price: int
    quantity: int
    discount: int = 0  # percent

    def __post_init__(self):
        validate_amount(self.price, minimum=0, field="price")
        validate_amount(self.quantity, minimum=1, field="quantity")
        if not 0 <= self.discount <= 100:
            raise ValidationError("discount must be between 0 and 100", field="discount")

    @property
    def unit_discount(self) -> int:
        return percent_of(self.price, self.discount)

    @property
    def final_price(self) -> int:
        return self.price - self.unit_discount

    @property
    def subtotal(self) -> int:
        return self.price * self.quantity

    @property
    def discount_total(self) -> int:
        return self.unit_discount * self.quantity


@dataclass
class ShippingAddress:
    receiver: str
    phone: str
    province: str
    city: str
    address: str
    postal_code: str

    def __post_init__(self):
        for name in ("receiver", "phone", "province", "city", "address", "postal_code"):
            if not (getattr(self, name) or "").strip():
                raise ValidationError(f"shipping address {name} is required", field=name)


@dataclass
class CouponSnapshot:
    code: str
    discount: int
    type: CouponType = CouponType.PERCENTAGE
    max_discount: Optional[int] = None

    def __post_init__(self):
        self.type = CouponType(self.type)
        if self.discount < 0:
            raise ValidationError("coupon discount cannot be negative", field="coupon")
        if self.type == CouponType.PERCENTAGE and self.discount > 100:
            raise ValidationError("percentage coupon cannot exceed 100", field="coupon")

    def discount_for(self, amount: int) -> int:
        """Coupon discount on ``amount``, never more than the amount itself."""
        if self.type == CouponType.PERCENTAGE:
            value = percent_of(amount, self.discount)
        else:
            value = self.discount
        if self.max_discount is not None:
            value = min(value, self.max_discount)
        return min(value, amount)


@dataclass
class StatusChange:
    status: OrderStatus
    note: Optional[str] = None
    actor_id: Optional[int] = None
    at: Optional[datetime] = None


@dataclass
class Order:
    """
    Order aggregate root.

    Business rules:
    1. totals are computed once from the frozen items at placement
    2. status follows VALID_TRANSITIONS
    3. cancellation only before fulfillment (pending/processing)
    4. stock restoration happens at most once (inventory_restored)
    5. orders are never deleted; cancelled/returned are terminal states
    """

    id: Optional[int]
    order_number: str
    user_id: int
    items: List[OrderItem]
    shipping_address: ShippingAddress
    shipping_method: ShippingMethod = ShippingMethod.NORMAL
    shipping_cost: int = 0
    coupon: Optional[CouponSnapshot] = None
    status: OrderStatus = OrderStatus.PENDING
    payment_status: OrderPaymentStatus = OrderPaymentStatus.PENDING
    subtotal: int = 0
    total_discount: int = 0
    total_amount: int = 0
    transaction_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    refund_amount: Optional[int] = None
    inventory_committed: bool = False
    inventory_restored: bool = False
    status_history: List[StatusChange] = field(default_factory=list)
    notes: Optional[str] = None
    cancel_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    return_reason: Optional[str] = None
    returned_at: Optional[datetime] = None
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.items:
            raise ValidationError("order must contain at least one item", field="items")
        self.status = OrderStatus(self.status)
        self.payment_status = OrderPaymentStatus(self.payment_status)
        self.shipping_method = ShippingMethod(self.shipping_method)
        validate_amount(self.shipping_cost, minimum=0, field="shipping_cost")
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.paid_at = _ensure_utc(self.paid_at)
        self.cancelled_at = _ensure_utc(self.cancelled_at)
        self.delivered_at = _ensure_utc(self.delivered_at)
        self.returned_at = _ensure_utc(self.returned_at)

    @classmethod
    def place(
        cls,
        *,
        order_number: str,
        user_id: int,
        items: List[OrderItem],
        shipping_address: ShippingAddress,
        shipping_method: ShippingMethod | str = ShippingMethod.NORMAL,
        shipping_cost: int = 0,
        coupon: Optional[CouponSnapshot] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> "Order":
        """Factory for a new pending order with totals computed from ``items``."""
        now = _ensure_utc(now) or datetime.now(timezone.utc)
        order = cls(
            id=None,
            order_number=order_number,
            user_id=user_id,
            items=list(items),
            shipping_address=shipping_address,
            shipping_method=shipping_method,
            shipping_cost=shipping_cost,
            coupon=coupon,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        order.compute_totals()
        order.status_history.append(StatusChange(OrderStatus.PENDING, "Order created", user_id, now))
        return order

    def compute_totals(self) -> None:
        subtotal = sum(item.subtotal for item in self.items)
        discount = sum(item.discount_total for item in self.items)
        if self.coupon is not None:
            discount += self.coupon.discount_for(subtotal - discount)
        self.subtotal = subtotal
        self.total_discount = discount
        self.total_amount = subtotal - discount + self.shipping_cost

    @property
    def fulfillment_started(self) -> bool:
        return self.status in (
            OrderStatus.PACKAGED,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
            OrderStatus.RETURNED,
        )

    @property
    def needs_inventory_restore(self) -> bool:
        return self.inventory_committed and not self.inventory_restored

    def stock_deltas(self) -> dict[int, int]:
        """Quantity per product across all line items."""
        deltas: dict[int, int] = {}
        for item in self.items:
            deltas[item.product_id] = deltas.get(item.product_id, 0) + item.quantity
        return deltas

    def update_status(
        self,
        new_status: OrderStatus | str,
        note: Optional[str] = None,
        actor_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> None:
        new_status = OrderStatus(new_status)
        if new_status not in VALID_TRANSITIONS[self.status]:
            raise InvalidStateError("order", self.status.value, new_status.value)
        now = _ensure_utc(now) or datetime.now(timezone.utc)
        self.status = new_status
        self.status_history.append(StatusChange(new_status, note, actor_id, now))
        if new_status == OrderStatus.DELIVERED:
            self.delivered_at = now
        elif new_status == OrderStatus.CANCELLED:
            self.cancelled_at = now
        elif new_status == OrderStatus.RETURNED:
            self.returned_at = now
        self.updated_at = now

    def cancel(self, reason: Optional[str] = None, actor_id: Optional[int] = None,
               now: Optional[datetime] = None) -> None:
        if self.status not in CANCELLABLE_STATUSES:
            raise InvalidStateError("order", self.status.value, OrderStatus.CANCELLED.value)
        self.cancel_reason = reason
        self.update_status(OrderStatus.CANCELLED, reason, actor_id, now)

    def return_order(
        self,
        reason: Optional[str] = None,
        actor_id: Optional[int] = None,
        now: Optional[datetime] = None,
        window_days: int = RETURN_WINDOW_DAYS,
    ) -> None:
        if self.status != OrderStatus.DELIVERED:
            raise InvalidStateError("order", self.status.value, OrderStatus.RETURNED.value)
        now = _ensure_utc(now) or datetime.now(timezone.utc)
        if self.delivered_at is not None and (now - self.delivered_at).days > window_days:
            raise ValidationError(
                f"return window of {window_days} days has passed",
                field="delivered_at",
            )
        self.return_reason = reason
        self.update_status(OrderStatus.RETURNED, reason, actor_id, now)

    def mark_paid(self, transaction_id: Optional[str], paid_at: Optional[datetime] = None) -> bool:
        """Mirror a completed payment. Returns False when already applied."""
        if self.payment_status != OrderPaymentStatus.PENDING:
            return False
        self.payment_status = OrderPaymentStatus.COMPLETED
        self.transaction_id = transaction_id
        self.paid_at = _ensure_utc(paid_at) or datetime.now(timezone.utc)
        if self.status == OrderStatus.PENDING:
            self.update_status(OrderStatus.PROCESSING, "Payment received", now=self.paid_at)
        self.updated_at = self.paid_at
        return True

    def mark_refunded(self, amount: int) -> bool:
        if self.payment_status == OrderPaymentStatus.REFUNDED:
            return False
        self.payment_status = OrderPaymentStatus.REFUNDED
        self.refund_amount = amount
        self.updated_at = datetime.now(timezone.utc)
        return True

    def mark_inventory_committed(self) -> None:
        if self.inventory_committed:
            raise InvalidStateError("order inventory", "committed", "committed")
        self.inventory_committed = True

    def mark_inventory_restored(self) -> bool:
        """Flag the stock as returned. False means nothing to do."""
        if not self.needs_inventory_restore:
            return False
        self.inventory_restored = True
        self.updated_at = datetime.now(timezone.utc)
        return True
