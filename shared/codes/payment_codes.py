"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    TIMEOUT = 60003
    RATE_LIMITED = 60004

    # Purchase-level gateway outcomes
    GATEWAY_ERROR = 60100
    VERIFICATION_FAILED = 60101


# Provider→internal status mapping (PaymentIntent / Refund / Transfer)
PROVIDER_STATUS_TO_INTERNAL = {
    "stripe": {
        "requires_payment_method": "failed",
        "requires_confirmation": "requires_confirmation",
        "requires_action": "pending",
        "processing": "processing",
        "requires_capture": "pending",
        "succeeded": "succeeded",
        "canceled": "canceled",
        # Refund objects
        "pending": "refund_pending",
        "failed": "failed",
    },
}
