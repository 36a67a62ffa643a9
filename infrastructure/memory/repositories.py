"""In-memory repository implementations.

Every read yields to the event loop once, like a database driver would, so
concurrent coroutines interleave between load and write the same way they do
against a real database. Check-and-write sections never await.
"""
from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional

from domain.cart.entity import Cart, Coupon
from domain.cart.repository import CartRepository, CouponRepository
from domain.catalog.entity import Product
from domain.catalog.repository import ProductRepository
from domain.common.exceptions import ConcurrentModificationError, ValidationError
from domain.order.entity import Order, OrderStatus
from domain.order.repository import OrderRepository
from domain.payment.entity import Payment, PaymentStatus
from domain.payment.repository import MethodStats, PaymentRepository, RevenueSummary
from domain.wishlist.entity import Wishlist
from domain.wishlist.repository import WishlistRepository

from .store import InMemoryStore, Journal, find_one


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _newest_first(rows: list) -> list:
    epoch = datetime.min.replace(tzinfo=timezone.utc)
    return sorted(rows, key=lambda r: (r.created_at or epoch, r.id or 0), reverse=True)


class _Base:
    table: str

    def __init__(self, store: InMemoryStore, journal: Journal) -> None:
        self.store = store
        self.journal = journal

    async def _yield(self) -> None:
        await asyncio.sleep(0)

    def _versioned_write(self, entity, label: str):
        current = self.store.tables[self.table].get(entity.id)
        if current is None or current.version != entity.version:
            raise ConcurrentModificationError(label, entity.id, entity.version)
        entity.version += 1
        entity.updated_at = entity.updated_at or _utcnow()
        self.journal.put(self.table, entity.id, entity)
        return entity


class InMemoryPaymentRepository(_Base, PaymentRepository):
    table = "payments"

    async def create(self, payment: Payment) -> Payment:
        if find_one(self.store.rows(self.table), lambda p: p.reference_id == payment.reference_id):
            raise ValidationError("reference_id already exists", field="reference_id")
        payment.id = self.store.next_id(self.table)
        payment.created_at = payment.created_at or _utcnow()
        payment.updated_at = payment.updated_at or payment.created_at
        self.journal.put(self.table, payment.id, payment)
        return payment

    async def get_by_id(self, payment_id: int) -> Optional[Payment]:
        await self._yield()
        return self.store.get(self.table, payment_id)

    async def get_by_reference_id(self, reference_id: str) -> Optional[Payment]:
        await self._yield()
        return find_one(self.store.rows(self.table), lambda p: p.reference_id == reference_id)

    async def get_by_transaction_id(self, transaction_id: str) -> Optional[Payment]:
        await self._yield()
        return find_one(self.store.rows(self.table), lambda p: p.transaction_id == transaction_id)

    async def find_by_order_and_user(self, order_id: int, user_id: int) -> List[Payment]:
        await self._yield()
        return _newest_first([
            p for p in self.store.rows(self.table)
            if p.order_id == order_id and p.user_id == user_id
        ])

    async def get_completed_by_order(self, order_id: int) -> Optional[Payment]:
        await self._yield()
        return find_one(
            _newest_first(self.store.rows(self.table)),
            lambda p: p.order_id == order_id
            and p.status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED),
        )

    def _for_user(self, user_id: int, status: Optional[PaymentStatus]) -> List[Payment]:
        return [
            p for p in self.store.rows(self.table)
            if p.user_id == user_id and (status is None or p.status == status)
        ]

    async def list_by_user(self, user_id: int, skip: int = 0, limit: int = 10,
                           status: Optional[PaymentStatus] = None) -> List[Payment]:
        await self._yield()
        return _newest_first(self._for_user(user_id, status))[skip:skip + limit]

    async def count_by_user(self, user_id: int, status: Optional[PaymentStatus] = None) -> int:
        await self._yield()
        return len(self._for_user(user_id, status))

    async def list_processing(self, limit: int = 100) -> List[Payment]:
        await self._yield()
        rows = [p for p in self.store.rows(self.table) if p.status == PaymentStatus.PROCESSING]
        return sorted(rows, key=lambda p: p.id)[:limit]

    async def update(self, payment: Payment) -> Payment:
        return self._versioned_write(payment, "payment")

    def _completed_between(self, start, end) -> List[Payment]:
        return [
            p for p in self.store.rows(self.table)
            if p.status == PaymentStatus.COMPLETED
            and p.paid_at is not None
            and (start is None or p.paid_at >= start)
            and (end is None or p.paid_at <= end)
        ]

    async def calculate_revenue(self, start=None, end=None) -> RevenueSummary:
        await self._yield()
        rows = self._completed_between(start, end)
        total = sum(p.amount for p in rows)
        return RevenueSummary(total, len(rows), total / len(rows) if rows else 0.0)

    async def stats_by_method(self, start=None, end=None) -> List[MethodStats]:
        await self._yield()
        grouped: Dict[str, List[int]] = {}
        for p in self._completed_between(start, end):
            grouped.setdefault(p.method.value, []).append(p.amount)
        stats = [
            MethodStats(method, len(amounts), sum(amounts), sum(amounts) / len(amounts))
            for method, amounts in grouped.items()
        ]
        return sorted(stats, key=lambda s: s.total_amount, reverse=True)

    async def list_failed(self, user_id: Optional[int] = None, limit: int = 10) -> List[Payment]:
        await self._yield()
        rows = [
            p for p in self.store.rows(self.table)
            if p.status in (PaymentStatus.FAILED, PaymentStatus.CANCELLED)
            and (user_id is None or p.user_id == user_id)
        ]
        return _newest_first(rows)[:limit]


class InMemoryOrderRepository(_Base, OrderRepository):
    table = "orders"

    async def create(self, order: Order) -> Order:
        order.id = self.store.next_id(self.table)
        order.created_at = order.created_at or _utcnow()
        order.updated_at = order.updated_at or order.created_at
        self.journal.put(self.table, order.id, order)
        return order

    async def get_by_id(self, order_id: int) -> Optional[Order]:
        await self._yield()
        return self.store.get(self.table, order_id)

    async def get_by_number(self, order_number: str) -> Optional[Order]:
        await self._yield()
        return find_one(self.store.rows(self.table), lambda o: o.order_number == order_number)

    def _for_user(self, user_id: int, status: Optional[OrderStatus]) -> List[Order]:
        return [
            o for o in self.store.rows(self.table)
            if o.user_id == user_id and (status is None or o.status == status)
        ]

    async def list_by_user(self, user_id: int, skip: int = 0, limit: int = 10,
                           status: Optional[OrderStatus] = None) -> List[Order]:
        await self._yield()
        return _newest_first(self._for_user(user_id, status))[skip:skip + limit]

    async def count_by_user(self, user_id: int, status: Optional[OrderStatus] = None) -> int:
        await self._yield()
        return len(self._for_user(user_id, status))

    async def next_sequence(self, day: date) -> int:
        prefix = f"ORD-{day:%y%m%d}-"
        return 1 + sum(1 for o in self.store.tables[self.table].values()
                       if o.order_number.startswith(prefix))

    async def list_awaiting_restock(self, limit: int = 100) -> List[Order]:
        await self._yield()
        refunded = {
            p.order_id for p in self.store.rows("payments")
            if p.status == PaymentStatus.REFUNDED
        }
        rows = [o for o in self.store.rows(self.table) if o.needs_inventory_restore and o.id in refunded]
        return sorted(rows, key=lambda o: o.id)[:limit]

    async def update(self, order: Order) -> Order:
        return self._versioned_write(order, "order")


class InMemoryProductRepository(_Base, ProductRepository):
    table = "products"

    async def create(self, product: Product) -> Product:
        product.id = product.id or self.store.next_id(self.table)
        product.created_at = product.created_at or _utcnow()
        self.journal.put(self.table, product.id, product)
        return product

    async def get_by_id(self, product_id: int) -> Optional[Product]:
        await self._yield()
        return self.store.get(self.table, product_id)

    async def get_many(self, product_ids: Iterable[int]) -> Dict[int, Product]:
        await self._yield()
        result = {}
        for pid in product_ids:
            product = self.store.get(self.table, pid)
            if product is not None:
                result[pid] = product
        return result

    async def try_decrement_stock(self, product_id: int, quantity: int) -> bool:
        row = self.store.tables[self.table].get(product_id)
        if row is None or row.stock.quantity < quantity:
            return False
        row.stock.quantity -= quantity
        row.stock.sold += quantity

        def undo() -> None:
            row.stock.quantity += quantity
            row.stock.sold = max(0, row.stock.sold - quantity)

        self.journal.record(undo)
        return True

    async def increment_stock(self, product_id: int, quantity: int) -> None:
        row = self.store.tables[self.table].get(product_id)
        if row is None:
            return
        sold_before = row.stock.sold
        row.stock.quantity += quantity
        row.stock.sold = max(0, row.stock.sold - quantity)

        def undo() -> None:
            row.stock.quantity -= quantity
            row.stock.sold = sold_before

        self.journal.record(undo)


class InMemoryCartRepository(_Base, CartRepository):
    table = "carts"

    async def get_by_user(self, user_id: int) -> Optional[Cart]:
        await self._yield()
        return self.store.get(self.table, user_id)

    async def save(self, cart: Cart) -> Cart:
        if cart.id is None:
            cart.id = self.store.next_id(self.table)
            cart.created_at = cart.created_at or _utcnow()
        cart.updated_at = _utcnow()
        self.journal.put(self.table, cart.user_id, cart)
        return cart


class InMemoryCouponRepository(_Base, CouponRepository):
    table = "coupons"

    async def create(self, coupon: Coupon) -> Coupon:
        coupon.id = self.store.next_id(self.table)
        self.journal.put(self.table, coupon.code, coupon)
        return coupon

    async def get_by_code(self, code: str) -> Optional[Coupon]:
        await self._yield()
        return self.store.get(self.table, (code or "").strip().upper())

    async def increment_usage(self, code: str) -> None:
        coupon = self.store.get(self.table, (code or "").strip().upper())
        if coupon is not None:
            coupon.used_count += 1
            self.journal.put(self.table, coupon.code, coupon)


class InMemoryWishlistRepository(_Base, WishlistRepository):
    table = "wishlists"

    async def get_by_user(self, user_id: int) -> Optional[Wishlist]:
        await self._yield()
        return self.store.get(self.table, user_id)

    async def get_by_share_token(self, token: str) -> Optional[Wishlist]:
        await self._yield()
        return find_one(
            self.store.rows(self.table),
            lambda w: w.is_public and w.share_token == token,
        )

    async def save(self, wishlist: Wishlist) -> Wishlist:
        if wishlist.id is None:
            wishlist.id = self.store.next_id(self.table)
            wishlist.created_at = wishlist.created_at or _utcnow()
        wishlist.updated_at = _utcnow()
        self.journal.put(self.table, wishlist.user_id, wishlist)
        return wishlist
