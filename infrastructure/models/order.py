"""
Order ORM models - orders and their frozen line items
"""
from sqlalchemy import (
    Column, Integer, BigInteger, String, DateTime, Text, JSON, Boolean, ForeignKey, Index
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .base import Base


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(20), nullable=False, unique=True, index=True, comment="ORD-YYMMDD-NNNN")
    user_id = Column(Integer, nullable=False, index=True)

    status = Column(String(20), nullable=False, default="pending", index=True)
    payment_status = Column(String(20), nullable=False, default="pending")
    status_history = Column(JSON, nullable=False, default=list)

    shipping_address = Column(JSON, nullable=False)
    shipping_method = Column(String(20), nullable=False, default="normal")
    shipping_cost = Column(BigInteger, nullable=False, default=0)
    coupon = Column(JSON, nullable=True, comment="code/discount/type snapshot")

    subtotal = Column(BigInteger, nullable=False, default=0)
    total_discount = Column(BigInteger, nullable=False, default=0)
    total_amount = Column(BigInteger, nullable=False, default=0)

    transaction_id = Column(String(100), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    refund_amount = Column(BigInteger, nullable=True)

    inventory_committed = Column(Boolean, nullable=False, default=False)
    inventory_restored = Column(Boolean, nullable=False, default=False)

    notes = Column(Text, nullable=True)
    cancel_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    return_reason = Column(Text, nullable=True)
    returned_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False, default=0, comment="optimistic lock")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.id",
    )

    __table_args__ = (
        Index("ix_orders_user_status", "user_id", "status"),
    )

    def __repr__(self):
        return f"<OrderModel(id={self.id}, order_number='{self.order_number}', status='{self.status}')>"


class OrderItemModel(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    price = Column(BigInteger, nullable=False, comment="unit price at order time")
    discount = Column(Integer, nullable=False, default=0, comment="percent at order time")
    final_price = Column(BigInteger, nullable=False)
    quantity = Column(Integer, nullable=False)

    order = relationship("OrderModel", back_populates="items")
