"""
Payment repository - SQLAlchemy implementation
"""
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import ConcurrentModificationError, ValidationError
from domain.payment.entity import Payment, PaymentMethod, PaymentStatus, RefundInfo
from domain.payment.repository import MethodStats, PaymentRepository, RevenueSummary
from infrastructure.models.payment import PaymentModel


logger = get_logger(__name__)


class SQLAlchemyPaymentRepository(PaymentRepository):
    """SQLAlchemy implementation of the payment repository"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> Payment:
        refund = None
        if model.refund_status:
            refund = RefundInfo(
                status=model.refund_status,
                amount=model.refund_amount,
                reason=model.refund_reason,
                refunded_by=model.refunded_by,
                requested_at=model.refund_requested_at,
                refunded_at=model.refunded_at,
                transaction_id=model.refund_transaction_id,
            )
        return Payment(
            id=model.id,
            order_id=model.order_id,
            user_id=model.user_id,
            amount=model.amount,
            method=PaymentMethod(model.method),
            reference_id=model.reference_id,
            status=PaymentStatus(model.status),
            transaction_id=model.transaction_id,
            description=model.description,
            paid_at=model.paid_at,
            failure_reason=model.failure_reason,
            attempts=model.attempts,
            ip=model.ip,
            user_agent=model.user_agent,
            gateway_data=dict(model.gateway_data or {}),
            refund=refund,
            metadata=dict(model.extra_metadata or {}),
            version=model.version,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _values(self, entity: Payment) -> dict:
        refund = entity.refund
        return dict(
            status=entity.status.value,
            transaction_id=entity.transaction_id,
            description=entity.description,
            paid_at=entity.paid_at,
            failure_reason=entity.failure_reason,
            attempts=entity.attempts,
            ip=entity.ip,
            user_agent=entity.user_agent,
            gateway_data=entity.gateway_data,
            extra_metadata=entity.metadata,
            refund_status=refund.status.value if refund else None,
            refund_amount=refund.amount if refund else None,
            refund_reason=refund.reason if refund else None,
            refunded_by=refund.refunded_by if refund else None,
            refund_requested_at=refund.requested_at if refund else None,
            refunded_at=refund.refunded_at if refund else None,
            refund_transaction_id=refund.transaction_id if refund else None,
            updated_at=entity.updated_at or datetime.now(timezone.utc),
        )

    def _select(self):
        # rows may have been changed by a versioned UPDATE in this session
        return select(PaymentModel).execution_options(populate_existing=True)

    async def _one(self, *criteria) -> Optional[Payment]:
        result = await self.session.execute(self._select().where(*criteria))
        db_payment = result.scalars().first()
        return self._to_entity(db_payment) if db_payment else None

    async def create(self, payment: Payment) -> Payment:
        db_payment = PaymentModel(
            order_id=payment.order_id,
            user_id=payment.user_id,
            amount=payment.amount,
            method=payment.method.value,
            reference_id=payment.reference_id,
            version=payment.version,
            created_at=payment.created_at or datetime.now(timezone.utc),
            **self._values(payment),
        )
        try:
            self.session.add(db_payment)
            await self.session.flush()
        except IntegrityError:
            logger.warning("payment_create_conflict", reference_id=payment.reference_id)
            raise ValidationError("reference_id already exists", field="reference_id")
        await self.session.refresh(db_payment)
        logger.info(
            "payment_created",
            payment_id=db_payment.id,
            order_id=db_payment.order_id,
            reference_id=db_payment.reference_id,
        )
        return self._to_entity(db_payment)

    async def get_by_id(self, payment_id: int) -> Optional[Payment]:
        return await self._one(PaymentModel.id == payment_id)

    async def get_by_reference_id(self, reference_id: str) -> Optional[Payment]:
        return await self._one(PaymentModel.reference_id == reference_id)

    async def get_by_transaction_id(self, transaction_id: str) -> Optional[Payment]:
        return await self._one(PaymentModel.transaction_id == transaction_id)

    async def find_by_order_and_user(self, order_id: int, user_id: int) -> List[Payment]:
        result = await self.session.execute(
            self._select()
            .where(PaymentModel.order_id == order_id, PaymentModel.user_id == user_id)
            .order_by(PaymentModel.created_at.desc(), PaymentModel.id.desc())
        )
        return [self._to_entity(p) for p in result.scalars().all()]

    async def get_completed_by_order(self, order_id: int) -> Optional[Payment]:
        result = await self.session.execute(
            self._select()
            .where(
                PaymentModel.order_id == order_id,
                PaymentModel.status.in_([PaymentStatus.COMPLETED.value, PaymentStatus.REFUNDED.value]),
            )
            .order_by(PaymentModel.id.desc())
            .limit(1)
        )
        db_payment = result.scalars().first()
        return self._to_entity(db_payment) if db_payment else None

    async def list_by_user(
        self,
        user_id: int,
        skip: int = 0,
        limit: int = 10,
        status: Optional[PaymentStatus] = None,
    ) -> List[Payment]:
        query = self._select().where(PaymentModel.user_id == user_id)
        if status:
            query = query.where(PaymentModel.status == status.value)
        query = query.order_by(PaymentModel.created_at.desc(), PaymentModel.id.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query)
        return [self._to_entity(p) for p in result.scalars().all()]

    async def count_by_user(self, user_id: int, status: Optional[PaymentStatus] = None) -> int:
        query = select(func.count(PaymentModel.id)).where(PaymentModel.user_id == user_id)
        if status:
            query = query.where(PaymentModel.status == status.value)
        result = await self.session.execute(query)
        return result.scalar_one()

    async def list_processing(self, limit: int = 100) -> List[Payment]:
        result = await self.session.execute(
            self._select()
            .where(PaymentModel.status == PaymentStatus.PROCESSING.value)
            .order_by(PaymentModel.id)
            .limit(limit)
        )
        return [self._to_entity(p) for p in result.scalars().all()]

    async def update(self, payment: Payment) -> Payment:
        """Versioned write: ``WHERE id = :id AND version = :expected``"""
        result = await self.session.execute(
            update(PaymentModel)
            .where(PaymentModel.id == payment.id, PaymentModel.version == payment.version)
            .values(version=payment.version + 1, **self._values(payment))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "payment_version_conflict",
                payment_id=payment.id,
                expected_version=payment.version,
            )
            raise ConcurrentModificationError("payment", payment.id, payment.version)

        payment.version += 1
        logger.info(
            "payment_updated",
            payment_id=payment.id,
            status=payment.status.value,
            version=payment.version,
        )
        return payment

    def _completed_query(self, columns, start, end):
        query = select(*columns).where(PaymentModel.status == PaymentStatus.COMPLETED.value)
        if start is not None:
            query = query.where(PaymentModel.paid_at >= start)
        if end is not None:
            query = query.where(PaymentModel.paid_at <= end)
        return query

    async def calculate_revenue(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> RevenueSummary:
        result = await self.session.execute(self._completed_query(
            [func.coalesce(func.sum(PaymentModel.amount), 0), func.count(PaymentModel.id)],
            start,
            end,
        ))
        total, count = result.one()
        total = int(total or 0)
        return RevenueSummary(total, count, total / count if count else 0.0)

    async def stats_by_method(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[MethodStats]:
        total = func.sum(PaymentModel.amount)
        query = (
            self._completed_query(
                [PaymentModel.method, func.count(PaymentModel.id), total],
                start,
                end,
            )
            .group_by(PaymentModel.method)
            .order_by(total.desc())
        )
        result = await self.session.execute(query)
        return [
            MethodStats(method, count, int(amount), int(amount) / count)
            for method, count, amount in result.all()
        ]

    async def list_failed(self, user_id: Optional[int] = None, limit: int = 10) -> List[Payment]:
        query = self._select().where(
            PaymentModel.status.in_([PaymentStatus.FAILED.value, PaymentStatus.CANCELLED.value])
        )
        if user_id is not None:
            query = query.where(PaymentModel.user_id == user_id)
        result = await self.session.execute(
            query.order_by(PaymentModel.created_at.desc(), PaymentModel.id.desc()).limit(limit)
        )
        return [self._to_entity(p) for p in result.scalars().all()]
