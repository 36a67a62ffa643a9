"""
Cart, coupon and wishlist repositories - SQLAlchemy implementation
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.cart.entity import Cart, CartItem, Coupon
from domain.cart.repository import CartRepository, CouponRepository
from domain.order.entity import CouponSnapshot
from domain.wishlist.entity import Wishlist, WishlistItem
from domain.wishlist.repository import WishlistRepository
from infrastructure.models.cart import (
    CartItemModel,
    CartModel,
    CouponModel,
    WishlistItemModel,
    WishlistModel,
)
from infrastructure.repositories.order_repository import _coupon_to_json


def _sync_children(existing: list, wanted: dict, make, apply) -> None:
    """Update rows in place by product id, then add new ones and drop the rest.

    Rows are never deleted and re-inserted for the same product, which would
    trip the (parent, product) unique constraint inside one flush.
    """
    by_product = {row.product_id: row for row in existing}
    for product_id, row in list(by_product.items()):
        if product_id not in wanted:
            existing.remove(row)
    for product_id, item in wanted.items():
        row = by_product.get(product_id)
        if row is None:
            existing.append(make(item))
        else:
            apply(row, item)


class SQLAlchemyCartRepository(CartRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: CartModel) -> Cart:
        return Cart(
            id=model.id,
            user_id=model.user_id,
            items=[
                CartItem(
                    product_id=row.product_id,
                    name=row.name,
                    quantity=row.quantity,
                    price=row.price,
                    discount=row.discount,
                    added_at=row.added_at,
                )
                for row in model.items
            ],
            coupon=CouponSnapshot(**model.coupon) if model.coupon else None,
            expires_at=model.expires_at,
            version=model.version,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def _load(self, user_id: int) -> Optional[CartModel]:
        result = await self.session.execute(
            select(CartModel).where(CartModel.user_id == user_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_user(self, user_id: int) -> Optional[Cart]:
        db_cart = await self._load(user_id)
        return self._to_entity(db_cart) if db_cart else None

    async def save(self, cart: Cart) -> Cart:
        db_cart = await self._load(cart.user_id)
        if db_cart is None:
            db_cart = CartModel(user_id=cart.user_id, items=[])
            self.session.add(db_cart)
        db_cart.coupon = _coupon_to_json(cart.coupon)
        db_cart.expires_at = cart.expires_at
        db_cart.version = (db_cart.version or 0) + 1

        def make(item: CartItem) -> CartItemModel:
            return CartItemModel(
                product_id=item.product_id,
                name=item.name,
                quantity=item.quantity,
                price=item.price,
                discount=item.discount,
                added_at=item.added_at or datetime.now(timezone.utc),
            )

        def apply(row: CartItemModel, item: CartItem) -> None:
            row.quantity = item.quantity
            row.price = item.price
            row.discount = item.discount

        _sync_children(db_cart.items, {i.product_id: i for i in cart.items}, make, apply)
        await self.session.flush()
        cart.id = db_cart.id
        cart.version = db_cart.version
        return cart


class SQLAlchemyCouponRepository(CouponRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: CouponModel) -> Coupon:
        return Coupon(
            id=model.id,
            code=model.code,
            type=model.type,
            discount=model.discount,
            valid_from=model.valid_from,
            valid_until=model.valid_until,
            minimum_amount=model.minimum_amount,
            maximum_discount=model.maximum_discount,
            usage_limit=model.usage_limit,
            used_count=model.used_count,
            is_active=model.is_active,
            description=model.description,
        )

    async def create(self, coupon: Coupon) -> Coupon:
        db_coupon = CouponModel(
            code=coupon.code,
            type=coupon.type.value,
            discount=coupon.discount,
            minimum_amount=coupon.minimum_amount,
            maximum_discount=coupon.maximum_discount,
            valid_from=coupon.valid_from,
            valid_until=coupon.valid_until,
            usage_limit=coupon.usage_limit,
            used_count=coupon.used_count,
            is_active=coupon.is_active,
            description=coupon.description,
        )
        self.session.add(db_coupon)
        await self.session.flush()
        coupon.id = db_coupon.id
        return coupon

    async def get_by_code(self, code: str) -> Optional[Coupon]:
        result = await self.session.execute(
            select(CouponModel)
            .where(CouponModel.code == (code or "").strip().upper())
            .execution_options(populate_existing=True)
        )
        db_coupon = result.scalar_one_or_none()
        return self._to_entity(db_coupon) if db_coupon else None

    async def increment_usage(self, code: str) -> None:
        await self.session.execute(
            update(CouponModel)
            .where(CouponModel.code == (code or "").strip().upper())
            .values(used_count=CouponModel.used_count + 1)
            .execution_options(synchronize_session=False)
        )


class SQLAlchemyWishlistRepository(WishlistRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: WishlistModel) -> Wishlist:
        return Wishlist(
            id=model.id,
            user_id=model.user_id,
            items=[
                WishlistItem(
                    product_id=row.product_id,
                    target_price=row.target_price,
                    notify_on_discount=row.notify_on_discount,
                    notify_on_available=row.notify_on_available,
                    added_at=row.added_at,
                )
                for row in model.items
            ],
            is_public=model.is_public,
            share_token=model.share_token,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    async def _load(self, *criteria) -> Optional[WishlistModel]:
        result = await self.session.execute(
            select(WishlistModel).where(*criteria).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_user(self, user_id: int) -> Optional[Wishlist]:
        db_wishlist = await self._load(WishlistModel.user_id == user_id)
        return self._to_entity(db_wishlist) if db_wishlist else None

    async def get_by_share_token(self, token: str) -> Optional[Wishlist]:
        db_wishlist = await self._load(WishlistModel.share_token == token, WishlistModel.is_public.is_(True))
        return self._to_entity(db_wishlist) if db_wishlist else None

    async def save(self, wishlist: Wishlist) -> Wishlist:
        db_wishlist = await self._load(WishlistModel.user_id == wishlist.user_id)
        if db_wishlist is None:
            db_wishlist = WishlistModel(user_id=wishlist.user_id, items=[])
            self.session.add(db_wishlist)
        db_wishlist.is_public = wishlist.is_public
        db_wishlist.share_token = wishlist.share_token

        def make(item: WishlistItem) -> WishlistItemModel:
            return WishlistItemModel(
                product_id=item.product_id,
                target_price=item.target_price,
                notify_on_discount=item.notify_on_discount,
                notify_on_available=item.notify_on_available,
                added_at=item.added_at or datetime.now(timezone.utc),
            )

        def apply(row: WishlistItemModel, item: WishlistItem) -> None:
            row.target_price = item.target_price
            row.notify_on_discount = item.notify_on_discount
            row.notify_on_available = item.notify_on_available

        _sync_children(db_wishlist.items, {i.product_id: i for i in wishlist.items}, make, apply)
        await self.session.flush()
        wishlist.id = db_wishlist.id
        return wishlist
