"""
Cart and wishlist API routes.
"""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends

from api.dependencies import Caller, get_caller, get_cart_service, get_wishlist_service
from application.dtos.orders import (
    AddCartItemRequest,
    AddWishlistItemRequest,
    ApplyCouponRequest,
    CartDTO,
    PriceDropDTO,
    UpdateCartItemRequest,
    WishlistDTO,
)
from application.services.cart_service import CartService, WishlistService
from core.response import Response as ApiResponse, success_response


router = APIRouter(tags=["Cart"])


@router.get("/cart", response_model=ApiResponse[CartDTO])
async def get_cart(caller: Caller = Depends(get_caller), service: CartService = Depends(get_cart_service)):
    return success_response(data=CartDTO.from_cart(await service.get_cart(caller.user_id)))


@router.post("/cart/items", response_model=ApiResponse[CartDTO])
async def add_cart_item(
    body: AddCartItemRequest,
    caller: Caller = Depends(get_caller),
    service: CartService = Depends(get_cart_service),
):
    cart = await service.add_item(caller.user_id, body.product_id, body.quantity)
    return success_response(data=CartDTO.from_cart(cart))


@router.put("/cart/items/{product_id}", response_model=ApiResponse[CartDTO])
async def update_cart_item(
    product_id: int,
    body: UpdateCartItemRequest,
    caller: Caller = Depends(get_caller),
    service: CartService = Depends(get_cart_service),
):
    cart = await service.update_item(caller.user_id, product_id, body.quantity)
    return success_response(data=CartDTO.from_cart(cart))


@router.delete("/cart/items/{product_id}", response_model=ApiResponse[CartDTO])
async def remove_cart_item(
    product_id: int,
    caller: Caller = Depends(get_caller),
    service: CartService = Depends(get_cart_service),
):
    cart = await service.remove_item(caller.user_id, product_id)
    return success_response(data=CartDTO.from_cart(cart))


@router.delete("/cart", response_model=ApiResponse[CartDTO])
async def clear_cart(caller: Caller = Depends(get_caller), service: CartService = Depends(get_cart_service)):
    return success_response(data=CartDTO.from_cart(await service.clear(caller.user_id)))


@router.post("/cart/coupon", response_model=ApiResponse[CartDTO])
async def apply_coupon(
    body: ApplyCouponRequest,
    caller: Caller = Depends(get_caller),
    service: CartService = Depends(get_cart_service),
):
    cart = await service.apply_coupon(caller.user_id, body.code)
    return success_response(data=CartDTO.from_cart(cart), message="Coupon applied")


@router.delete("/cart/coupon", response_model=ApiResponse[CartDTO])
async def remove_coupon(caller: Caller = Depends(get_caller), service: CartService = Depends(get_cart_service)):
    return success_response(data=CartDTO.from_cart(await service.remove_coupon(caller.user_id)))


@router.post("/cart/refresh", response_model=ApiResponse[CartDTO])
async def refresh_cart(caller: Caller = Depends(get_caller), service: CartService = Depends(get_cart_service)):
    return success_response(data=CartDTO.from_cart(await service.refresh(caller.user_id)))


@router.get("/wishlist", response_model=ApiResponse[WishlistDTO])
async def get_wishlist(
    caller: Caller = Depends(get_caller),
    service: WishlistService = Depends(get_wishlist_service),
):
    return success_response(data=WishlistDTO.from_wishlist(await service.get_wishlist(caller.user_id)))


@router.post("/wishlist/items", response_model=ApiResponse[WishlistDTO])
async def add_wishlist_item(
    body: AddWishlistItemRequest,
    caller: Caller = Depends(get_caller),
    service: WishlistService = Depends(get_wishlist_service),
):
    wishlist = await service.add_item(
        caller.user_id,
        body.product_id,
        target_price=body.target_price,
        notify_on_discount=body.notify_on_discount,
        notify_on_available=body.notify_on_available,
    )
    return success_response(data=WishlistDTO.from_wishlist(wishlist))


@router.delete("/wishlist/items/{product_id}", response_model=ApiResponse[WishlistDTO])
async def remove_wishlist_item(
    product_id: int,
    caller: Caller = Depends(get_caller),
    service: WishlistService = Depends(get_wishlist_service),
):
    wishlist = await service.remove_item(caller.user_id, product_id)
    return success_response(data=WishlistDTO.from_wishlist(wishlist))


@router.post("/wishlist/share", response_model=ApiResponse[dict])
async def share_wishlist(
    caller: Caller = Depends(get_caller),
    service: WishlistService = Depends(get_wishlist_service),
):
    return success_response(data={"share_token": await service.share(caller.user_id)})


@router.get("/wishlist/shared/{token}", response_model=ApiResponse[WishlistDTO])
async def shared_wishlist(token: str, service: WishlistService = Depends(get_wishlist_service)):
    return success_response(data=WishlistDTO.from_wishlist(await service.get_shared(token)))


@router.get("/wishlist/price-drops", response_model=ApiResponse[List[PriceDropDTO]])
async def price_drops(
    caller: Caller = Depends(get_caller),
    service: WishlistService = Depends(get_wishlist_service),
):
    drops = await service.price_drops(caller.user_id)
    return success_response(data=[PriceDropDTO.model_validate(d) for d in drops])


@router.get("/wishlist/available", response_model=ApiResponse[List[int]])
async def now_available(
    caller: Caller = Depends(get_caller),
    service: WishlistService = Depends(get_wishlist_service),
):
    return success_response(data=await service.now_available(caller.user_id))
