"""
Orders API routes: checkout, history, cancellation, returns and fulfillment.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import Caller, get_admin, get_caller, get_order_service
from application.dtos.orders import (
    CancelOrderRequest,
    OrderDTO,
    PlaceOrderRequest,
    ReturnOrderRequest,
    UpdateOrderStatusRequest,
)
from application.services.order_service import OrderService
from core.config import settings
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response
from domain.order.entity import OrderStatus, ShippingAddress


router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("", response_model=ApiResponse[OrderDTO])
async def place_order(
    body: PlaceOrderRequest,
    caller: Caller = Depends(get_caller),
    service: OrderService = Depends(get_order_service),
):
    """Create an order from the caller's cart and reserve its stock."""
    order = await service.place_order(
        caller.user_id,
        ShippingAddress(**body.shipping_address.model_dump()),
        body.shipping_method,
        notes=body.notes,
    )
    return success_response(data=OrderDTO.model_validate(order), message="Order placed")


@router.get("", response_model=ApiResponse[PaginatedData[OrderDTO]])
async def list_orders(
    page: int = Query(1, ge=1),
    size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    status: Optional[OrderStatus] = Query(None),
    caller: Caller = Depends(get_caller),
    service: OrderService = Depends(get_order_service),
):
    items, total = await service.list_orders(caller.user_id, page, size, status)
    return paginated_response([OrderDTO.model_validate(o) for o in items], total, page, size)


@router.get("/{order_id}", response_model=ApiResponse[OrderDTO])
async def get_order(
    order_id: int,
    caller: Caller = Depends(get_caller),
    service: OrderService = Depends(get_order_service),
):
    order = await service.get_order(order_id, None if caller.is_admin else caller.user_id)
    return success_response(data=OrderDTO.model_validate(order))


@router.post("/{order_id}/cancel", response_model=ApiResponse[OrderDTO])
async def cancel_order(
    order_id: int,
    body: CancelOrderRequest,
    caller: Caller = Depends(get_caller),
    service: OrderService = Depends(get_order_service),
):
    order = await service.cancel_order(
        order_id,
        caller.user_id,
        body.reason,
        owner_id=None if caller.is_admin else caller.user_id,
    )
    return success_response(data=OrderDTO.model_validate(order), message="Order cancelled")


@router.post("/{order_id}/return", response_model=ApiResponse[OrderDTO])
async def return_order(
    order_id: int,
    body: ReturnOrderRequest,
    caller: Caller = Depends(get_caller),
    service: OrderService = Depends(get_order_service),
):
    order = await service.return_order(
        order_id,
        caller.user_id,
        body.reason,
        owner_id=None if caller.is_admin else caller.user_id,
    )
    return success_response(data=OrderDTO.model_validate(order), message="Order returned")


@router.patch("/{order_id}/status", response_model=ApiResponse[OrderDTO])
async def update_order_status(
    order_id: int,
    body: UpdateOrderStatusRequest,
    admin: Caller = Depends(get_admin),
    service: OrderService = Depends(get_order_service),
):
    order = await service.update_status(order_id, body.status, body.note, admin.user_id)
    return success_response(data=OrderDTO.model_validate(order))
