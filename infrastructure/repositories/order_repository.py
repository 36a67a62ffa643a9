"""
Order repository - SQLAlchemy implementation
"""
from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import ConcurrentModificationError
from domain.order.entity import (
    CouponSnapshot,
    Order,
    OrderItem,
    OrderStatus,
    ShippingAddress,
    StatusChange,
)
from domain.order.repository import OrderRepository
from domain.payment.entity import PaymentStatus
from infrastructure.models.order import OrderItemModel, OrderModel
from infrastructure.models.payment import PaymentModel


logger = get_logger(__name__)


def _history_to_json(history: List[StatusChange]) -> list:
    return [
        {
            "status": change.status.value,
            "note": change.note,
            "actor_id": change.actor_id,
            "at": change.at.isoformat() if change.at else None,
        }
        for change in history
    ]


def _history_from_json(rows: Optional[list]) -> List[StatusChange]:
    return [
        StatusChange(
            status=OrderStatus(row["status"]),
            note=row.get("note"),
            actor_id=row.get("actor_id"),
            at=datetime.fromisoformat(row["at"]) if row.get("at") else None,
        )
        for row in rows or []
    ]


def _coupon_to_json(coupon: Optional[CouponSnapshot]) -> Optional[dict]:
    if coupon is None:
        return None
    return {
        "code": coupon.code,
        "discount": coupon.discount,
        "type": coupon.type.value,
        "max_discount": coupon.max_discount,
    }


class SQLAlchemyOrderRepository(OrderRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        return Order(
            id=model.id,
            order_number=model.order_number,
            user_id=model.user_id,
            items=[
                OrderItem(
                    product_id=item.product_id,
                    name=item.name,
                    price=item.price,
                    quantity=item.quantity,
                    discount=item.discount,
                )
                for item in model.items
            ],
            shipping_address=ShippingAddress(**model.shipping_address),
            shipping_method=model.shipping_method,
            shipping_cost=model.shipping_cost,
            coupon=CouponSnapshot(**model.coupon) if model.coupon else None,
            status=model.status,
            payment_status=model.payment_status,
            subtotal=model.subtotal,
            total_discount=model.total_discount,
            total_amount=model.total_amount,
            transaction_id=model.transaction_id,
            paid_at=model.paid_at,
            refund_amount=model.refund_amount,
            inventory_committed=model.inventory_committed,
            inventory_restored=model.inventory_restored,
            status_history=_history_from_json(model.status_history),
            notes=model.notes,
            cancel_reason=model.cancel_reason,
            cancelled_at=model.cancelled_at,
            delivered_at=model.delivered_at,
            return_reason=model.return_reason,
            returned_at=model.returned_at,
            version=model.version,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _values(self, order: Order) -> dict:
        return dict(
            status=order.status.value,
            payment_status=order.payment_status.value,
            status_history=_history_to_json(order.status_history),
            transaction_id=order.transaction_id,
            paid_at=order.paid_at,
            refund_amount=order.refund_amount,
            inventory_committed=order.inventory_committed,
            inventory_restored=order.inventory_restored,
            notes=order.notes,
            cancel_reason=order.cancel_reason,
            cancelled_at=order.cancelled_at,
            delivered_at=order.delivered_at,
            return_reason=order.return_reason,
            returned_at=order.returned_at,
            updated_at=order.updated_at or datetime.now(timezone.utc),
        )

    def _select(self):
        return select(OrderModel).execution_options(populate_existing=True)

    async def create(self, order: Order) -> Order:
        db_order = OrderModel(
            order_number=order.order_number,
            user_id=order.user_id,
            shipping_address=vars(order.shipping_address).copy(),
            shipping_method=order.shipping_method.value,
            shipping_cost=order.shipping_cost,
            coupon=_coupon_to_json(order.coupon),
            subtotal=order.subtotal,
            total_discount=order.total_discount,
            total_amount=order.total_amount,
            version=order.version,
            created_at=order.created_at or datetime.now(timezone.utc),
            items=[
                OrderItemModel(
                    product_id=item.product_id,
                    name=item.name,
                    price=item.price,
                    discount=item.discount,
                    final_price=item.final_price,
                    quantity=item.quantity,
                )
                for item in order.items
            ],
            **self._values(order),
        )
        self.session.add(db_order)
        await self.session.flush()
        order.id = db_order.id
        logger.info(
            "order_created",
            order_id=order.id,
            order_number=order.order_number,
            total_amount=order.total_amount,
        )
        return order

    async def get_by_id(self, order_id: int) -> Optional[Order]:
        result = await self.session.execute(self._select().where(OrderModel.id == order_id))
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def get_by_number(self, order_number: str) -> Optional[Order]:
        result = await self.session.execute(self._select().where(OrderModel.order_number == order_number))
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def list_by_user(
        self,
        user_id: int,
        skip: int = 0,
        limit: int = 10,
        status: Optional[OrderStatus] = None,
    ) -> List[Order]:
        query = self._select().where(OrderModel.user_id == user_id)
        if status:
            query = query.where(OrderModel.status == status.value)
        query = query.order_by(OrderModel.created_at.desc(), OrderModel.id.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query)
        return [self._to_entity(o) for o in result.scalars().all()]

    async def count_by_user(self, user_id: int, status: Optional[OrderStatus] = None) -> int:
        query = select(func.count(OrderModel.id)).where(OrderModel.user_id == user_id)
        if status:
            query = query.where(OrderModel.status == status.value)
        result = await self.session.execute(query)
        return result.scalar_one()

    async def next_sequence(self, day: date) -> int:
        prefix = f"ORD-{day:%y%m%d}-"
        result = await self.session.execute(
            select(func.count(OrderModel.id)).where(OrderModel.order_number.like(f"{prefix}%"))
        )
        return result.scalar_one() + 1

    async def list_awaiting_restock(self, limit: int = 100) -> List[Order]:
        refunded = (
            select(PaymentModel.id)
            .where(
                PaymentModel.order_id == OrderModel.id,
                PaymentModel.status == PaymentStatus.REFUNDED.value,
            )
            .exists()
        )
        result = await self.session.execute(
            self._select()
            .where(
                OrderModel.inventory_committed.is_(True),
                OrderModel.inventory_restored.is_(False),
                refunded,
            )
            .order_by(OrderModel.id)
            .limit(limit)
        )
        return [self._to_entity(o) for o in result.scalars().all()]

    async def update(self, order: Order) -> Order:
        result = await self.session.execute(
            update(OrderModel)
            .where(OrderModel.id == order.id, OrderModel.version == order.version)
            .values(version=order.version + 1, **self._values(order))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning("order_version_conflict", order_id=order.id, expected_version=order.version)
            raise ConcurrentModificationError("order", order.id, order.version)
        order.version += 1
        logger.info("order_updated", order_id=order.id, status=order.status.value, version=order.version)
        return order
