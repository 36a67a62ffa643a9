"""
Cart and wishlist use-cases.
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Optional

from core.config import StoreSettings, settings
from core.logging_config import get_logger
from domain.cart.entity import Cart
from domain.catalog.entity import Product
from domain.common.exceptions import CouponInvalidError, NotFoundError, ProductNotFoundError
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.wishlist.entity import PriceDrop, Wishlist


logger = get_logger(__name__)

UnitOfWorkFactory = Callable[..., AbstractUnitOfWork]


async def _product(uow: AbstractUnitOfWork, product_id: int) -> Product:
    product = await uow.product_repository.get_by_id(product_id)
    if product is None:
        raise ProductNotFoundError(product_id)
    return product


class CartService:
    def __init__(self, uow_factory: UnitOfWorkFactory) -> None:
        self.uow_factory = uow_factory

    @staticmethod
    async def _cart(uow: AbstractUnitOfWork, user_id: int) -> Cart:
        return await uow.cart_repository.get_by_user(user_id) or Cart(user_id=user_id)

    async def get_cart(self, user_id: int) -> Cart:
        async with self.uow_factory(readonly=True) as uow:
            return await self._cart(uow, user_id)

    async def add_item(self, user_id: int, product_id: int, quantity: int = 1) -> Cart:
        async with self.uow_factory() as uow:
            cart = await self._cart(uow, user_id)
            cart.add_item(await _product(uow, product_id), quantity)
            cart = await uow.cart_repository.save(cart)
        logger.info("cart_item_added", user_id=user_id, product_id=product_id, quantity=quantity)
        return cart

    async def update_item(self, user_id: int, product_id: int, quantity: int) -> Cart:
        async with self.uow_factory() as uow:
            cart = await self._cart(uow, user_id)
            cart.update_item(await _product(uow, product_id), quantity)
            return await uow.cart_repository.save(cart)

    async def remove_item(self, user_id: int, product_id: int) -> Cart:
        async with self.uow_factory() as uow:
            cart = await self._cart(uow, user_id)
            cart.remove_item(product_id)
            return await uow.cart_repository.save(cart)

    async def clear(self, user_id: int) -> Cart:
        async with self.uow_factory() as uow:
            cart = await self._cart(uow, user_id)
            cart.clear()
            return await uow.cart_repository.save(cart)

    async def apply_coupon(self, user_id: int, code: str, *, now: Optional[datetime] = None) -> Cart:
        async with self.uow_factory() as uow:
            cart = await self._cart(uow, user_id)
            coupon = await uow.coupon_repository.get_by_code(code)
            if coupon is None:
                raise CouponInvalidError(code.strip().upper(), "unknown code")
            cart.apply_coupon(coupon, now)
            cart = await uow.cart_repository.save(cart)
        logger.info("coupon_applied", user_id=user_id, code=coupon.code)
        return cart

    async def remove_coupon(self, user_id: int) -> Cart:
        async with self.uow_factory() as uow:
            cart = await self._cart(uow, user_id)
            cart.remove_coupon()
            return await uow.cart_repository.save(cart)

    async def refresh(self, user_id: int) -> Cart:
        """Re-sync prices and stock with the catalog; saves only when something changed."""
        async with self.uow_factory() as uow:
            cart = await self._cart(uow, user_id)
            products = await uow.product_repository.get_many(i.product_id for i in cart.items)
            if cart.refresh(products):
                cart = await uow.cart_repository.save(cart)
                logger.info("cart_refreshed", user_id=user_id, items=len(cart.items))
            return cart


class WishlistService:
    def __init__(self, uow_factory: UnitOfWorkFactory, *, store: StoreSettings = settings.store) -> None:
        self.uow_factory = uow_factory
        self.store = store

    @staticmethod
    async def _wishlist(uow: AbstractUnitOfWork, user_id: int) -> Wishlist:
        return await uow.wishlist_repository.get_by_user(user_id) or Wishlist(user_id=user_id)

    async def get_wishlist(self, user_id: int) -> Wishlist:
        async with self.uow_factory(readonly=True) as uow:
            return await self._wishlist(uow, user_id)

    async def add_item(
        self,
        user_id: int,
        product_id: int,
        *,
        target_price: Optional[int] = None,
        notify_on_discount: bool = False,
        notify_on_available: bool = False,
    ) -> Wishlist:
        async with self.uow_factory() as uow:
            await _product(uow, product_id)
            wishlist = await self._wishlist(uow, user_id)
            wishlist.add_item(
                product_id,
                target_price=target_price,
                notify_on_discount=notify_on_discount,
                notify_on_available=notify_on_available,
                max_items=self.store.max_wishlist_size,
            )
            return await uow.wishlist_repository.save(wishlist)

    async def remove_item(self, user_id: int, product_id: int) -> Wishlist:
        async with self.uow_factory() as uow:
            wishlist = await self._wishlist(uow, user_id)
            if wishlist.remove_item(product_id):
                wishlist = await uow.wishlist_repository.save(wishlist)
            return wishlist

    async def share(self, user_id: int) -> str:
        async with self.uow_factory() as uow:
            wishlist = await self._wishlist(uow, user_id)
            token = wishlist.share()
            await uow.wishlist_repository.save(wishlist)
        logger.info("wishlist_shared", user_id=user_id)
        return token

    async def get_shared(self, token: str) -> Wishlist:
        async with self.uow_factory(readonly=True) as uow:
            wishlist = await uow.wishlist_repository.get_by_share_token(token)
        if wishlist is None:
            raise NotFoundError("Shared wishlist not found", details={"token": token})
        return wishlist

    async def price_drops(self, user_id: int) -> List[PriceDrop]:
        async with self.uow_factory(readonly=True) as uow:
            wishlist = await self._wishlist(uow, user_id)
            products = await uow.product_repository.get_many(i.product_id for i in wishlist.items)
        return wishlist.price_drops(products)

    async def now_available(self, user_id: int) -> List[int]:
        async with self.uow_factory(readonly=True) as uow:
            wishlist = await self._wishlist(uow, user_id)
            products = await uow.product_repository.get_many(i.product_id for i in wishlist.items)
        return wishlist.now_available(products)
