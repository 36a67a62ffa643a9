"""
Catalog product as seen by the order core: price, discount and stock.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from domain.common.exceptions import ValidationError
from domain.common.money import percent_of


@dataclass
class StockLevel:
    quantity: int = 0
    reserved: int = 0
    sold: int = 0

    def __post_init__(self):
        if self.quantity < 0:
            raise ValidationError("stock quantity cannot be negative", field="stock.quantity")

    @property
    def available(self) -> int:
        return max(0, self.quantity - self.reserved)


@dataclass
class Product:
    id: Optional[int]
    name: str
    price: int
    discount: int = 0  # percent, 0-100
    stock: StockLevel = field(default_factory=StockLevel)
    status: str = "active"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.price < 0:
            raise ValidationError("price cannot be negative", field="price")
        if not 0 <= self.discount <= 100:
            raise ValidationError("discount must be between 0 and 100", field="discount")

    @property
    def final_price(self) -> int:
        return self.price - percent_of(self.price, self.discount)

    @property
    def in_stock(self) -> bool:
        return self.stock.quantity > 0

    def has_available(self, quantity: int) -> bool:
        return self.stock.quantity >= quantity
