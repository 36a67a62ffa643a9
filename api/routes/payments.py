"""
Payments API routes.

Thin layer over PaymentService and RefundWorkflow; gateway details stay in
infrastructure.
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from api.dependencies import (
    Caller,
    get_admin,
    get_caller,
    get_payment_service,
    get_refund_workflow,
)
from application.dtos.payments import (
    CompleteRefundBody,
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    MethodStatsDTO,
    PaymentDTO,
    PaymentResult,
    RefundRequestBody,
    RevenueDTO,
    VerifyPaymentRequest,
)
from application.services.payment_service import PaymentService
from application.services.refund_service import RefundWorkflow
from core.config import settings
from core.response import PaginatedData, Response as ApiResponse, paginated_response, success_response
from domain.payment.entity import PaymentStatus


router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/initiate", response_model=ApiResponse[InitiatePaymentResponse])
async def initiate_payment(
    body: InitiatePaymentRequest,
    request: Request,
    caller: Caller = Depends(get_caller),
    service: PaymentService = Depends(get_payment_service),
):
    result = await service.initiate_payment(
        body.order_id,
        caller.user_id,
        body.method,
        ip=getattr(request.state, "client_ip", None),
        user_agent=request.headers.get("User-Agent"),
    )
    return success_response(data=result, message="Redirect to the payment gateway")


@router.post("/verify", response_model=ApiResponse[PaymentResult])
async def verify_payment(
    body: VerifyPaymentRequest,
    caller: Caller = Depends(get_caller),
    service: PaymentService = Depends(get_payment_service),
):
    result = await service.verify_payment(body.reference_id, body.authority, body.status, user_id=caller.user_id)
    return success_response(data=result, message=result.message or "Success")


@router.get("/callback", response_model=ApiResponse[PaymentResult])
async def gateway_callback(
    reference_id: str = Query(..., min_length=1),
    authority: str = Query(..., alias="Authority", min_length=1),
    status: str = Query("OK", alias="Status"),
    service: PaymentService = Depends(get_payment_service),
):
    """Customer's browser returning from the gateway redirect."""
    result = await service.verify_payment(reference_id, authority, status)
    return success_response(data=result, message=result.message or "Success")


@router.get("/history", response_model=ApiResponse[PaginatedData[PaymentDTO]])
async def payment_history(
    page: int = Query(1, ge=1),
    size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    status: Optional[PaymentStatus] = Query(None),
    caller: Caller = Depends(get_caller),
    service: PaymentService = Depends(get_payment_service),
):
    items, total = await service.list_history(caller.user_id, page, size, status)
    return paginated_response([PaymentDTO.model_validate(p) for p in items], total, page, size)


@router.get("/order/{order_id}", response_model=ApiResponse[List[PaymentDTO]])
async def payments_for_order(
    order_id: int,
    caller: Caller = Depends(get_caller),
    service: PaymentService = Depends(get_payment_service),
):
    payments = await service.payments_for_order(order_id, caller.user_id)
    return success_response(data=[PaymentDTO.model_validate(p) for p in payments])


@router.get("/stats/revenue", response_model=ApiResponse[RevenueDTO])
async def revenue(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    _: Caller = Depends(get_admin),
    service: PaymentService = Depends(get_payment_service),
):
    summary = await service.calculate_revenue(start, end)
    return success_response(data=RevenueDTO.model_validate(summary))


@router.get("/stats/methods", response_model=ApiResponse[List[MethodStatsDTO]])
async def stats_by_method(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    _: Caller = Depends(get_admin),
    service: PaymentService = Depends(get_payment_service),
):
    stats = await service.stats_by_method(start, end)
    return success_response(data=[MethodStatsDTO.model_validate(s) for s in stats])


@router.get("/failed", response_model=ApiResponse[List[PaymentDTO]])
async def failed_payments(
    limit: int = Query(10, ge=1, le=100),
    user_id: Optional[int] = Query(None),
    _: Caller = Depends(get_admin),
    service: PaymentService = Depends(get_payment_service),
):
    payments = await service.failed_payments(user_id, limit)
    return success_response(data=[PaymentDTO.model_validate(p) for p in payments])


@router.get("/{payment_id}", response_model=ApiResponse[PaymentDTO])
async def get_payment(
    payment_id: int,
    caller: Caller = Depends(get_caller),
    service: PaymentService = Depends(get_payment_service),
):
    payment = await service.get_payment(payment_id, None if caller.is_admin else caller.user_id)
    return success_response(data=PaymentDTO.model_validate(payment))


@router.post("/{payment_id}/refund", response_model=ApiResponse[PaymentDTO])
async def request_refund(
    payment_id: int,
    body: RefundRequestBody,
    admin: Caller = Depends(get_admin),
    workflow: RefundWorkflow = Depends(get_refund_workflow),
):
    payment = await workflow.request_refund(payment_id, body.amount, body.reason, admin.user_id)
    return success_response(data=PaymentDTO.model_validate(payment), message="Refund requested")


@router.post("/{payment_id}/refund/complete", response_model=ApiResponse[PaymentDTO])
async def complete_refund(
    payment_id: int,
    body: CompleteRefundBody,
    _: Caller = Depends(get_admin),
    workflow: RefundWorkflow = Depends(get_refund_workflow),
):
    payment = await workflow.complete_refund(payment_id, body.transaction_id)
    return success_response(data=PaymentDTO.model_validate(payment), message="Refund completed")


@router.post("/{payment_id}/refund/resume", response_model=ApiResponse[dict])
async def resume_refund(
    payment_id: int,
    _: Caller = Depends(get_admin),
    workflow: RefundWorkflow = Depends(get_refund_workflow),
):
    restored = await workflow.resume_refund(payment_id)
    return success_response(data={"restored": restored})


@router.post("/{payment_id}/reconcile", response_model=ApiResponse[PaymentResult])
async def reconcile_payment(
    payment_id: int,
    _: Caller = Depends(get_admin),
    service: PaymentService = Depends(get_payment_service),
):
    result = await service.reconcile_payment(payment_id)
    return success_response(data=result, message=result.message or "Success")
