"""
Payment specific codes and gateway status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Payment record errors (22xxx)
    PAYMENT_NOT_FOUND = 22000
    REFUND_NOT_ALLOWED = 22001
    REFUND_NOT_FOUND = 22002
    PAYMENT_ALREADY_COMPLETED = 22003

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    TIMEOUT = 60003


# Gateway numeric status -> internal verification outcome.
# Zarinpal: 100 verified, 101 already verified (repeat callback).
GATEWAY_STATUS_TO_INTERNAL = {
    "zarinpal": {
        100: "succeeded",
        101: "succeeded",
        -9: "failed",
        -11: "failed",
        -21: "failed",
        -22: "failed",
        -33: "failed",
        -54: "failed",
    },
}
