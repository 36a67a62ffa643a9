"""
API dependencies: caller identity and service wiring.

Authentication happens upstream; the gateway in front of this service
forwards the caller as ``X-User-ID`` / ``X-User-Role`` headers.
"""
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

from fastapi import Depends, Header

from application.ports.payment_gateway import PaymentGateway
from application.ports.task_scheduler import TaskScheduler
from application.services.cart_service import CartService, WishlistService
from application.services.order_service import OrderService
from application.services.payment_service import PaymentService
from application.services.refund_service import RefundWorkflow
from core.exceptions import ForbiddenException, UnauthorizedException
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.external.payments import get_payment_gateway
from infrastructure.tasks.scheduler import CeleryTaskScheduler
from infrastructure.unit_of_work import sqlalchemy_uow_factory

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Caller:
    user_id: int
    role: str = "customer"

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


async def get_caller(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-ID"),
    x_user_role: Optional[str] = Header(default=None, alias="X-User-Role"),
) -> Caller:
    if not x_user_id:
        raise UnauthorizedException("X-User-ID header is required")
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise UnauthorizedException("X-User-ID must be an integer")
    return Caller(user_id=user_id, role=(x_user_role or "customer").lower())


async def get_admin(caller: Caller = Depends(get_caller)) -> Caller:
    if not caller.is_admin:
        raise ForbiddenException("Administrator role required")
    return caller


def get_uow_factory() -> Callable[..., AbstractUnitOfWork]:
    return sqlalchemy_uow_factory


def get_task_scheduler() -> TaskScheduler:
    return CeleryTaskScheduler()


async def get_gateway() -> AsyncIterator[PaymentGateway]:
    gateway = get_payment_gateway()
    try:
        yield gateway
    finally:
        await gateway.aclose()


def get_refund_workflow(
    uow_factory=Depends(get_uow_factory),
    scheduler: TaskScheduler = Depends(get_task_scheduler),
) -> RefundWorkflow:
    return RefundWorkflow(uow_factory, scheduler)


def get_payment_service(
    uow_factory=Depends(get_uow_factory),
    gateway: PaymentGateway = Depends(get_gateway),
    scheduler: TaskScheduler = Depends(get_task_scheduler),
) -> PaymentService:
    return PaymentService(uow_factory, gateway, scheduler)


def get_order_service(
    uow_factory=Depends(get_uow_factory),
    refunds: RefundWorkflow = Depends(get_refund_workflow),
) -> OrderService:
    return OrderService(uow_factory, refunds)


def get_cart_service(uow_factory=Depends(get_uow_factory)) -> CartService:
    return CartService(uow_factory)


def get_wishlist_service(uow_factory=Depends(get_uow_factory)) -> WishlistService:
    return WishlistService(uow_factory)
