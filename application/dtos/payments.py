"""
Payment DTOs (Pydantic v2) used at the payment gateway boundary.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator
from pydantic.types import condecimal

# Currencies accepted for code purchases (no FX conversion is performed)
ISO_4217 = {
    "USD", "EUR", "GBP", "CNY", "JPY", "KRW", "HKD", "AUD", "CAD", "SGD", "AED", "SAR", "EGP",
}


def _normalize_currency(v: str) -> str:
    u = (v or "").upper()
    if len(u) != 3 or not u.isalpha():
        raise ValueError("currency must be ISO-4217 alpha-3")
    if u not in ISO_4217:
        raise ValueError("unsupported currency")
    return u


class CreatePayment(BaseModel):
    """Create a card payment intent.

    When ``destination_account`` is set the intent is created as a destination
    charge: the processor routes ``amount - application_fee_amount`` to the
    connected account and keeps the fee on the platform.
    """

    reference: str
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    currency: str = Field(default="USD")
    description: Optional[str] = None
    destination_account: Optional[str] = None
    application_fee_amount: Optional[Decimal] = None
    idempotency_key: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: str) -> str:
        return _normalize_currency(v)

    @field_validator("application_fee_amount")
    @classmethod
    def _fee_not_negative(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is not None and v < 0:
            raise ValueError("application_fee_amount must be >= 0")
        return v


class QueryPayment(BaseModel):
    intent_id: str


class PaymentIntent(BaseModel):
    intent_id: str
    status: str
    provider: str
    # Provider-native status before mapping, kept for diagnostics
    raw_status: Optional[str] = None
    client_secret: Optional[str] = None
    amount_minor: Optional[int] = None
    currency: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict)
    provider_ref: Optional[str] = None


class RefundRequest(BaseModel):
    intent_id: str
    amount: Optional[condecimal(gt=0)] = None  # type: ignore[valid-type]  # None = full refund
    currency: str = Field(default="USD")
    reason: Optional[str] = None
    idempotency_key: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency_refund(cls, v: str) -> str:
        return _normalize_currency(v)


class RefundResult(BaseModel):
    refund_id: str
    status: str
    provider: str
    provider_ref: Optional[str] = None


class TransferRequest(BaseModel):
    destination_account: str
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    currency: str = Field(default="USD")
    idempotency_key: str
    description: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency_transfer(cls, v: str) -> str:
        return _normalize_currency(v)


class TransferResult(BaseModel):
    success: bool
    transfer_id: Optional[str] = None
    error: Optional[str] = None
    # Set when the failure is worth retrying (network, rate limit)
    recoverable: bool = False


class WebhookEvent(BaseModel):
    id: str
    type: str
    provider: str
    data: dict[str, Any]
    # raw fields for traceability (optional)
    raw_headers: Optional[dict[str, Any]] = None
    raw_body: Optional[bytes] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def object(self) -> dict[str, Any]:
        """The resource the event is about (``data.object`` in Stripe payloads)."""
        obj = self.data.get("object")
        return obj if isinstance(obj, dict) else {}
