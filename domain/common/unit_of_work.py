"""Unit of Work abstraction"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.cart.repository import CartRepository, CouponRepository
from domain.catalog.repository import ProductRepository
from domain.order.repository import OrderRepository
from domain.payment.repository import PaymentRepository
from domain.wishlist.repository import WishlistRepository


class AbstractUnitOfWork(ABC):
    """Transaction boundary for application services"""

    payment_repository: PaymentRepository
    order_repository: OrderRepository
    product_repository: ProductRepository
    cart_repository: CartRepository
    coupon_repository: CouponRepository
    wishlist_repository: WishlistRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.payment_repository = None  # type: ignore[assignment]
        self.order_repository = None  # type: ignore[assignment]
        self.product_repository = None  # type: ignore[assignment]
        self.cart_repository = None  # type: ignore[assignment]
        self.coupon_repository = None  # type: ignore[assignment]
        self.wishlist_repository = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # auto-commit only when writable and not committed explicitly
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """Commit the transaction"""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """Roll the transaction back"""
