import re
from datetime import datetime, timedelta, timezone

import pytest

from domain.common.exceptions import (
    InvalidStateError,
    RefundNotAllowedError,
    RefundNotFoundError,
    ValidationError,
)
from domain.payment.entity import Payment, PaymentMethod, PaymentStatus, RefundStatus


REFERENCE_RE = re.compile(r"^PAY-[0-9A-Z]+-[0-9A-Z]{5}$")
PAID_AT = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _completed(amount: int = 250000) -> Payment:
    payment = Payment.create(1, 7, amount, PaymentMethod.ZARINPAL)
    payment.mark_processing("A0001")
    payment.mark_completed("TX-1", paid_at=PAID_AT)
    return payment


def test_create_assigns_reference_id_in_expected_format():
    refs = {Payment.create(1, 7, 5000, "zarinpal").reference_id for _ in range(200)}
    assert len(refs) == 200
    assert all(REFERENCE_RE.match(ref) for ref in refs)


def test_create_starts_pending_with_one_attempt():
    payment = Payment.create(1, 7, 5000, "card")
    assert payment.status == PaymentStatus.PENDING
    assert payment.attempts == 1
    assert payment.id is None


def test_amount_below_minimum_is_rejected():
    with pytest.raises(ValidationError) as exc:
        Payment.create(1, 7, 500, "zarinpal", min_amount=1000)
    assert exc.value.field == "amount"


def test_non_integer_amount_is_rejected():
    with pytest.raises(ValidationError):
        Payment.create(1, 7, 1500.5, "zarinpal")  # type: ignore[arg-type]


def test_unknown_method_is_rejected():
    with pytest.raises(ValidationError) as exc:
        Payment.create(1, 7, 5000, "bitcoin")
    assert exc.value.field == "method"


def test_formatted_amount_groups_thousands():
    assert Payment.create(1, 7, 1250000, "zarinpal").formatted_amount == "1,250,000 IRR"


def test_failed_payment_is_never_revived():
    payment = Payment.create(1, 7, 5000, "zarinpal")
    payment.mark_failed("gateway rejected")
    with pytest.raises(InvalidStateError):
        payment.mark_processing("A1")
    with pytest.raises(InvalidStateError):
        payment.mark_completed("TX")


def test_log_attempt_counts_without_touching_status():
    payment = Payment.create(1, 7, 5000, "zarinpal")
    payment.log_attempt("10.0.0.1", "pytest")
    assert payment.attempts == 2
    assert payment.status == PaymentStatus.PENDING
    assert payment.ip == "10.0.0.1"


def test_full_refund_defaults_to_payment_amount():
    payment = _completed()
    refund = payment.process_refund(reason="damaged", actor_id=99, now=PAID_AT + timedelta(days=2))
    assert refund.amount == payment.amount
    assert refund.status == RefundStatus.PENDING
    assert payment.status == PaymentStatus.REFUNDED


def test_refund_rejected_unless_completed():
    payment = Payment.create(1, 7, 5000, "zarinpal")
    with pytest.raises(RefundNotAllowedError):
        payment.process_refund()


def test_refund_rejected_above_payment_amount():
    payment = _completed(5000)
    with pytest.raises(ValidationError):
        payment.process_refund(5001, now=PAID_AT)


def test_refund_rejected_after_window():
    payment = _completed()
    with pytest.raises(RefundNotAllowedError) as exc:
        payment.process_refund(now=PAID_AT + timedelta(days=31))
    assert "window" in exc.value.reason


def test_refund_allowed_on_last_day_of_window():
    payment = _completed()
    payment.process_refund(now=PAID_AT + timedelta(days=30, hours=23))
    assert payment.status == PaymentStatus.REFUNDED


def test_second_refund_rejected_while_first_pending():
    payment = _completed()
    payment.process_refund(1000, now=PAID_AT)
    with pytest.raises(RefundNotAllowedError) as exc:
        payment.process_refund(1000, now=PAID_AT)
    assert "in progress" in exc.value.reason


def test_complete_refund_requires_pending_refund():
    payment = _completed()
    with pytest.raises(RefundNotFoundError):
        payment.complete_refund("RF-1")
    payment.process_refund(now=PAID_AT)
    info = payment.complete_refund("RF-1")
    assert info.status == RefundStatus.COMPLETED
    assert info.transaction_id == "RF-1"
    with pytest.raises(RefundNotAllowedError):
        payment.process_refund(now=PAID_AT)
