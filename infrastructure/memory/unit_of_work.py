"""In-memory Unit of Work"""
from __future__ import annotations

from typing import Optional

from domain.common.unit_of_work import AbstractUnitOfWork

from .repositories import (
    InMemoryCartRepository,
    InMemoryCouponRepository,
    InMemoryOrderRepository,
    InMemoryPaymentRepository,
    InMemoryProductRepository,
    InMemoryWishlistRepository,
)
from .store import InMemoryStore, Journal


class InMemoryUnitOfWork(AbstractUnitOfWork):
    """Unit of Work over an InMemoryStore; rollback undoes this unit's writes only."""

    def __init__(self, store: Optional[InMemoryStore] = None, *, readonly: bool = False) -> None:
        super().__init__(readonly=readonly)
        self.store = store or InMemoryStore()
        self.journal = Journal(self.store)
        self.commits = 0

    async def __aenter__(self) -> "InMemoryUnitOfWork":
        self._committed = False
        self.journal.clear()
        self.payment_repository = InMemoryPaymentRepository(self.store, self.journal)
        self.order_repository = InMemoryOrderRepository(self.store, self.journal)
        self.product_repository = InMemoryProductRepository(self.store, self.journal)
        self.cart_repository = InMemoryCartRepository(self.store, self.journal)
        self.coupon_repository = InMemoryCouponRepository(self.store, self.journal)
        self.wishlist_repository = InMemoryWishlistRepository(self.store, self.journal)
        return self

    async def commit(self) -> None:
        if self._readonly:
            self._committed = True
            return
        self.journal.clear()
        self._committed = True
        self.commits += 1

    async def rollback(self) -> None:
        self.journal.rollback()
        self._committed = False


class InMemoryUnitOfWorkFactory:
    """Callable handing out units of work that share one store."""

    def __init__(self, store: Optional[InMemoryStore] = None) -> None:
        self.store = store or InMemoryStore()

    def __call__(self, *, readonly: bool = False) -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(self.store, readonly=readonly)
