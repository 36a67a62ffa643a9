"""
Wishlist domain entity
"""
from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from domain.catalog.entity import Product
from domain.common.exceptions import ValidationError, WishlistFullError


MAX_WISHLIST_ITEMS = 100


@dataclass
class WishlistItem:
    product_id: int
    target_price: Optional[int] = None
    notify_on_discount: bool = False
    notify_on_available: bool = False
    added_at: Optional[datetime] = None

    def __post_init__(self):
        if self.target_price is not None and self.target_price < 0:
            raise ValidationError("target price cannot be negative", field="target_price")


@dataclass
class PriceDrop:
    product_id: int
    current_price: int
    discount: int
    target_price: Optional[int] = None


@dataclass
class Wishlist:
    user_id: int
    items: List[WishlistItem] = field(default_factory=list)
    is_public: bool = False
    share_token: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def find(self, product_id: int) -> Optional[WishlistItem]:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    def has_product(self, product_id: int) -> bool:
        return self.find(product_id) is not None

    def add_item(
        self,
        product_id: int,
        *,
        target_price: Optional[int] = None,
        notify_on_discount: bool = False,
        notify_on_available: bool = False,
        max_items: int = MAX_WISHLIST_ITEMS,
    ) -> WishlistItem:
        """Add a product, or update the flags of an existing entry."""
        item = self.find(product_id)
        if item is not None:
            if target_price is not None:
                if target_price < 0:
                    raise ValidationError("target price cannot be negative", field="target_price")
                item.target_price = target_price
            item.notify_on_discount = notify_on_discount
            item.notify_on_available = notify_on_available
        else:
            if len(self.items) >= max_items:
                raise WishlistFullError(max_items)
            item = WishlistItem(
                product_id=product_id,
                target_price=target_price,
                notify_on_discount=notify_on_discount,
                notify_on_available=notify_on_available,
                added_at=datetime.now(timezone.utc),
            )
            self.items.append(item)
        self.updated_at = datetime.now(timezone.utc)
        return item

    def remove_item(self, product_id: int) -> bool:
        item = self.find(product_id)
        if item is None:
            return False
        self.items.remove(item)
        self.updated_at = datetime.now(timezone.utc)
        return True

    def sorted_items(self, newest_first: bool = True) -> List[WishlistItem]:
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        return sorted(self.items, key=lambda i: i.added_at or epoch, reverse=newest_first)

    def share(self) -> str:
        self.share_token = secrets.token_hex(16)
        self.is_public = True
        return self.share_token

    def price_drops(self, products: Dict[int, Product]) -> List[PriceDrop]:
        """Items whose target price was reached, or that went on discount."""
        drops = []
        for item in self.items:
            product = products.get(item.product_id)
            if product is None:
                continue
            if item.target_price is not None and product.final_price <= item.target_price:
                drops.append(PriceDrop(product.id, product.final_price, product.discount, item.target_price))
            elif item.notify_on_discount and product.discount > 0:
                drops.append(PriceDrop(product.id, product.final_price, product.discount))
        return drops

    def now_available(self, products: Dict[int, Product]) -> List[int]:
        return [
            item.product_id
            for item in self.items
            if item.notify_on_available
            and item.product_id in products
            and products[item.product_id].in_stock
        ]
