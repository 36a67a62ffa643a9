"""
Payment repository interface
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, List

from .entity import Payment, PaymentStatus


@dataclass
class RevenueSummary:
    total_revenue: int = 0
    total_payments: int = 0
    avg_payment: float = 0.0


@dataclass
class MethodStats:
    method: str
    count: int
    total_amount: int
    avg_amount: float


class PaymentRepository(ABC):
    """Payment persistence contract.

    ``update`` is an optimistic write: it must only succeed when the stored
    version equals ``payment.version`` and then bumps it by one, otherwise it
    raises ConcurrentModificationError.
    """

    @abstractmethod
    async def create(self, payment: Payment) -> Payment:
        """Persist a new payment"""

    @abstractmethod
    async def get_by_id(self, payment_id: int) -> Optional[Payment]:
        """Get a payment by primary key"""

    @abstractmethod
    async def get_by_reference_id(self, reference_id: str) -> Optional[Payment]:
        """Get a payment by its public reference id"""

    @abstractmethod
    async def get_by_transaction_id(self, transaction_id: str) -> Optional[Payment]:
        """Get a payment by the gateway transaction id"""

    @abstractmethod
    async def find_by_order_and_user(self, order_id: int, user_id: int) -> List[Payment]:
        """All payments of an order for a user, newest first"""

    @abstractmethod
    async def get_completed_by_order(self, order_id: int) -> Optional[Payment]:
        """The completed (or refunded) payment of an order, if any"""

    @abstractmethod
    async def list_by_user(
        self,
        user_id: int,
        skip: int = 0,
        limit: int = 10,
        status: Optional[PaymentStatus] = None,
    ) -> List[Payment]:
        """Payment history for a user, newest first"""

    @abstractmethod
    async def count_by_user(self, user_id: int, status: Optional[PaymentStatus] = None) -> int:
        """Count payments for a user"""

    @abstractmethod
    async def list_processing(self, limit: int = 100) -> List[Payment]:
        """Payments stuck in processing, awaiting reconciliation"""

    @abstractmethod
    async def update(self, payment: Payment) -> Payment:
        """Optimistically write back a loaded payment"""

    @abstractmethod
    async def calculate_revenue(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> RevenueSummary:
        """Sum of completed payments paid inside [start, end]"""

    @abstractmethod
    async def stats_by_method(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[MethodStats]:
        """Completed payment totals grouped by method, largest first"""

    @abstractmethod
    async def list_failed(self, user_id: Optional[int] = None, limit: int = 10) -> List[Payment]:
        """Failed or cancelled payments, newest first"""
