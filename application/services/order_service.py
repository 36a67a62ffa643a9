"""
Order use-cases: checkout, cancellation, returns and fulfillment status.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from application.services.refund_service import RefundWorkflow
from core.config import StoreSettings, settings
from core.logging_config import get_logger
from domain.common.exceptions import (
    CouponInvalidError,
    OrderNotFoundError,
    RefundNotAllowedError,
    ValidationError,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.inventory.service import InventoryAdjuster
from domain.order.entity import (
    Order,
    OrderStatus,
    ShippingAddress,
    ShippingMethod,
    generate_order_number,
)
from domain.payment.entity import Payment, PaymentStatus


logger = get_logger(__name__)

UnitOfWorkFactory = Callable[..., AbstractUnitOfWork]


def shipping_cost_for(method: ShippingMethod, amount: int, store: StoreSettings) -> int:
    if method == ShippingMethod.NORMAL and amount >= store.free_shipping_threshold:
        return 0
    return store.shipping_costs.get(method.value, 0)


class OrderService:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        refund_workflow: RefundWorkflow,
        *,
        store: StoreSettings = settings.store,
    ) -> None:
        self.uow_factory = uow_factory
        self.refunds = refund_workflow
        self.store = store

    async def _load(self, uow: AbstractUnitOfWork, order_id: int, user_id: Optional[int]) -> Order:
        order = await uow.order_repository.get_by_id(order_id)
        if order is None or (user_id is not None and order.user_id != user_id):
            raise OrderNotFoundError(order_id)
        return order

    def _ensure_refundable(self, payment: Payment, now: Optional[datetime]) -> None:
        blocker = payment.refund_blocker(now, self.refunds.config.refund_window_days)
        if blocker is not None:
            raise RefundNotAllowedError(payment.reference_id, blocker)

    async def place_order(
        self,
        user_id: int,
        shipping_address: ShippingAddress,
        shipping_method: ShippingMethod | str = ShippingMethod.NORMAL,
        *,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        """
        Turn the user's cart into an order.

        Line items are frozen at current catalog prices and the stock is
        decremented in the same transaction as the order insert, so either
        both happen or neither does. The cart itself is emptied once the
        order is paid.
        """
        now = now or datetime.now(timezone.utc)
        shipping_method = ShippingMethod(shipping_method)
        async with self.uow_factory() as uow:
            cart = await uow.cart_repository.get_by_user(user_id)
            if cart is None or cart.is_empty:
                raise ValidationError("cart is empty", field="items")

            products = await uow.product_repository.get_many(item.product_id for item in cart.items)
            items = cart.to_order_items(products)

            coupon = None
            if cart.coupon is not None:
                stored = await uow.coupon_repository.get_by_code(cart.coupon.code)
                if stored is None:
                    raise CouponInvalidError(cart.coupon.code, "coupon no longer exists")
                stored.check(sum(i.final_price * i.quantity for i in items), now)
                coupon = stored.snapshot()

            goods_total = sum(i.final_price * i.quantity for i in items)
            order = Order.place(
                order_number="pending",
                user_id=user_id,
                items=items,
                shipping_address=shipping_address,
                shipping_method=shipping_method,
                shipping_cost=shipping_cost_for(shipping_method, goods_total, self.store),
                coupon=coupon,
                notes=notes,
                now=now,
            )

            await InventoryAdjuster(uow.product_repository).decrement(order)

            order.order_number = generate_order_number(now.date(), await uow.order_repository.next_sequence(now.date()))
            order = await uow.order_repository.create(order)
            if coupon is not None:
                await uow.coupon_repository.increment_usage(coupon.code)
            await uow.commit()

        logger.info(
            "order_placed",
            order_id=order.id,
            order_number=order.order_number,
            user_id=user_id,
            items=len(order.items),
            total_amount=order.total_amount,
        )
        return order

    async def cancel_order(
        self,
        order_id: int,
        actor_id: Optional[int],
        reason: Optional[str] = None,
        *,
        owner_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        """
        Cancel an order that has not entered fulfillment.

        With a completed payment the refund workflow runs and restores the
        stock; otherwise the stock is restored here and open (pending)
        payments are cancelled. Payments already at the gateway are left to
        reconciliation.
        A paid order whose payment can no longer be refunded is left as it
        is and RefundNotAllowedError is raised.
        """
        refund_payment_id = None
        async with self.uow_factory() as uow:
            order = await self._load(uow, order_id, owner_id)
            order.cancel(reason, actor_id)

            payments = await uow.payment_repository.find_by_order_and_user(order.id, order.user_id)
            for payment in payments:
                if payment.status == PaymentStatus.COMPLETED:
                    self._ensure_refundable(payment, now)
                    refund_payment_id = payment.id
                elif payment.status == PaymentStatus.PENDING:
                    payment.mark_cancelled("order cancelled")
                    await uow.payment_repository.update(payment)

            if refund_payment_id is None:
                await InventoryAdjuster(uow.product_repository).restore(order)
            order = await uow.order_repository.update(order)
            await uow.commit()

        logger.info(
            "order_cancelled",
            order_id=order_id,
            actor_id=actor_id,
            reason=reason,
            refund=refund_payment_id is not None,
        )
        if refund_payment_id is not None:
            await self.refunds.request_refund(
                refund_payment_id, None, reason or "order cancelled", actor_id, now=now
            )
            return await self.get_order(order_id)
        return order

    async def return_order(
        self,
        order_id: int,
        actor_id: Optional[int],
        reason: Optional[str] = None,
        *,
        owner_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        """Return a delivered order within the return window and refund it."""
        refund_payment_id = None
        async with self.uow_factory() as uow:
            order = await self._load(uow, order_id, owner_id)
            order.return_order(reason, actor_id, now, window_days=self.store.return_window_days)
            payment = await uow.payment_repository.get_completed_by_order(order.id)
            if payment is not None and payment.status == PaymentStatus.COMPLETED:
                self._ensure_refundable(payment, now)
                refund_payment_id = payment.id
            else:
                await InventoryAdjuster(uow.product_repository).restore(order)
            order = await uow.order_repository.update(order)
            await uow.commit()

        logger.info("order_returned", order_id=order_id, actor_id=actor_id, reason=reason)
        if refund_payment_id is not None:
            await self.refunds.request_refund(refund_payment_id, None, reason or "order returned", actor_id, now=now)
            return await self.get_order(order_id)
        return order

    async def update_status(
        self,
        order_id: int,
        new_status: OrderStatus | str,
        note: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> Order:
        """Fulfillment transitions; cancel and return go through their own flows."""
        new_status = OrderStatus(new_status)
        if new_status == OrderStatus.CANCELLED:
            return await self.cancel_order(order_id, actor_id, note)
        if new_status == OrderStatus.RETURNED:
            return await self.return_order(order_id, actor_id, note)
        async with self.uow_factory() as uow:
            order = await self._load(uow, order_id, None)
            order.update_status(new_status, note, actor_id)
            order = await uow.order_repository.update(order)
            await uow.commit()
        logger.info("order_status_changed", order_id=order_id, status=new_status.value, actor_id=actor_id)
        return order

    async def get_order(self, order_id: int, owner_id: Optional[int] = None) -> Order:
        async with self.uow_factory(readonly=True) as uow:
            return await self._load(uow, order_id, owner_id)

    async def list_orders(
        self,
        user_id: int,
        page: int = 1,
        size: int = 10,
        status: Optional[OrderStatus] = None,
    ) -> Tuple[List[Order], int]:
        async with self.uow_factory(readonly=True) as uow:
            items = await uow.order_repository.list_by_user(user_id, (page - 1) * size, size, status)
            total = await uow.order_repository.count_by_user(user_id, status)
        return items, total
