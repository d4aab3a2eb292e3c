"""
Shared business codes used across layers (Domain/Core/API).

This package exposes BusinessCode at `shared.codes` and keeps
payment-specific codes under `shared.codes.payment_codes`.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    """Unified business status codes (single source of truth)."""

    # Success
    SUCCESS = 0

    # Parameter errors (1xxxx)
    PARAM_ERROR = 10000
    PARAM_MISSING = 10001
    PARAM_TYPE_ERROR = 10002
    PARAM_VALIDATION_ERROR = 10003

    # Business errors (2xxxx)
    BUSINESS_ERROR = 20000
    TOKEN_INVALID = 20004
    TOKEN_EXPIRED = 20005
    NOT_FOUND = 20006  # Generic resource not found

    # Purchase policy (201xx)
    ACC_NOT_FOUND = 20101
    ACC_INACTIVE = 20102
    NOT_AUTHORIZED = 20103
    COURSE_NOT_FOUND = 20104
    PRICING_NOT_FOUND = 20105
    DISCOUNT_INVALID = 20106
    AMOUNT_MISMATCH = 20107
    RECEIPT_REQUIRED = 20108
    QUANTITY_INVALID = 20109

    # Batch / code lifecycle (202xx)
    BATCH_NOT_FOUND = 20201
    NOT_MANUAL_PAYMENT = 20202
    CODE_NOT_AVAILABLE = 20203
    CODE_GENERATION_FAILED = 20204

    # Ledger / settlement (203xx)
    TRANSACTION_NOT_FOUND = 20301
    TRANSACTION_NOT_REFUNDABLE = 20302
    SETTLEMENT_NOT_FOUND = 20303
    SETTLEMENT_STATE_INVALID = 20304

    # Transfers (204xx)
    TRANSFER_NOT_FOUND = 20401
    TRANSFER_NOT_RETRYABLE = 20402
    TRANSFER_NOT_ELIGIBLE = 20403

    # Concurrency (209xx)
    BATCH_NOT_PENDING = 20901
    PURCHASE_ALREADY_PROCESSED = 20902
    TRANSFER_IN_PROGRESS = 20903

    # Authorization errors (3xxxx)
    PERMISSION_ERROR = 30000
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002

    # System errors (4xxxx)
    SYSTEM_ERROR = 40000
    DATABASE_ERROR = 40001
    NETWORK_ERROR = 40002
    SERVICE_UNAVAILABLE = 40003

    # Rate limiting (5xxxx)
    RATE_LIMIT_ERROR = 50000
    TOO_MANY_REQUESTS = 50001


__all__ = ["BusinessCode"]
