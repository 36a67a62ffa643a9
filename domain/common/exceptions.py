"""Domain business exceptions, shared by the domain and infrastructure layers.

The core layer only maps these to HTTP responses; the domain never imports
from core.
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """Base class for business errors"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class ValidationError(BusinessException):
    """Bad input: amounts, quantities, required fields."""

    def __init__(self, message: str, *, field: str | None = None, details: dict | None = None):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="ValidationError",
            details=details,
            field=field,
        )


class InvalidStateError(BusinessException):
    """Illegal status transition on an aggregate."""

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            code=BusinessCode.INVALID_STATE,
            message=f"Cannot move {entity} from '{current}' to '{target}'",
            error_type="InvalidStateError",
            details={"entity": entity, "current": current, "target": target},
            field="status",
        )


class ConcurrentModificationError(BusinessException):
    def __init__(self, entity: str, entity_id, expected_version: int):
        super().__init__(
            code=BusinessCode.CONCURRENT_MODIFICATION,
            message=f"{entity} {entity_id} was modified concurrently",
            error_type="ConcurrentModificationError",
            details={"entity": entity, "id": entity_id, "expected_version": expected_version},
        )


class NotFoundError(BusinessException):
    """Base for missing resources."""

    def __init__(self, message: str, *, code: int = BusinessCode.NOT_FOUND,
                 error_type: str = "NotFound", details: Optional[dict] = None):
        super().__init__(code=code, message=message, error_type=error_type, details=details)


class PaymentNotFoundError(NotFoundError):
    def __init__(self, identifier: str):
        super().__init__(
            f"Payment not found: {identifier}",
            code=PaymentCode.PAYMENT_NOT_FOUND,
            error_type="PaymentNotFound",
            details={"payment": identifier},
        )


class RefundNotFoundError(NotFoundError):
    """No pending refund request exists on the payment."""

    def __init__(self, reference_id: str):
        super().__init__(
            f"No pending refund for payment {reference_id}",
            code=PaymentCode.REFUND_NOT_FOUND,
            error_type="RefundNotFound",
            details={"reference_id": reference_id},
        )


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id):
        super().__init__(
            f"Order not found: {order_id}",
            code=BusinessCode.ORDER_NOT_FOUND,
            error_type="OrderNotFound",
            details={"order_id": order_id},
        )


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id):
        super().__init__(
            f"Product not found: {product_id}",
            code=BusinessCode.PRODUCT_NOT_FOUND,
            error_type="ProductNotFound",
            details={"product_id": product_id},
        )


class CartItemNotFoundError(NotFoundError):
    def __init__(self, product_id):
        super().__init__(
            f"Product {product_id} is not in the cart",
            code=BusinessCode.CART_ITEM_NOT_FOUND,
            error_type="CartItemNotFound",
            details={"product_id": product_id},
        )


class RefundNotAllowedError(BusinessException):
    def __init__(self, reference_id: str, reason: str):
        super().__init__(
            code=PaymentCode.REFUND_NOT_ALLOWED,
            message=f"Payment {reference_id} cannot be refunded: {reason}",
            error_type="RefundNotAllowedError",
            details={"reference_id": reference_id, "reason": reason},
        )
        self.reason = reason


class PaymentAlreadyCompletedError(BusinessException):
    def __init__(self, order_id):
        super().__init__(
            code=PaymentCode.PAYMENT_ALREADY_COMPLETED,
            message=f"Order {order_id} has already been paid",
            error_type="PaymentAlreadyCompleted",
            details={"order_id": order_id},
        )


class InsufficientStockError(BusinessException):
    """Raised before any stock is touched; ``shortages`` lists every offender."""

    def __init__(self, shortages: list[dict]):
        ids = ", ".join(str(s["product_id"]) for s in shortages)
        super().__init__(
            code=BusinessCode.INSUFFICIENT_STOCK,
            message=f"Insufficient stock for product(s): {ids}",
            error_type="InsufficientStockError",
            details={"shortages": shortages},
        )
        self.shortages = shortages


class CouponInvalidError(BusinessException):
    def __init__(self, code: str, reason: str):
        super().__init__(
            code=BusinessCode.COUPON_INVALID,
            message=f"Coupon {code} cannot be applied: {reason}",
            error_type="CouponInvalid",
            details={"code": code, "reason": reason},
            field="coupon",
        )


class WishlistFullError(BusinessException):
    def __init__(self, limit: int):
        super().__init__(
            code=BusinessCode.WISHLIST_FULL,
            message=f"Wishlist cannot hold more than {limit} products",
            error_type="WishlistFull",
            details={"limit": limit},
        )


class PaymentProviderError(BusinessException):
    """Gateway rejected the request or kept failing."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None,
                 details: Optional[dict] = None):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.PROVIDER_ERROR,
            message=message,
            error_type="PaymentProviderError",
            details=full_details,
        )


class PaymentRecoverableError(BusinessException):
    """Transient gateway failure (network, 5xx, timeout); safe to retry."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None,
                 details: Optional[dict] = None):
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.PROVIDER_RECOVERABLE,
            message=message,
            error_type="PaymentRecoverableError",
            details=full_details,
        )
