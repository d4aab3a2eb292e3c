"""
Stripe adapter (PaymentIntents, Refunds, Connect transfers, webhooks) using
the official stripe-python SDK.

Notes on SDK usage:
- Module-level resources (`stripe.PaymentIntent`, `stripe.Transfer`, ...) accept
  an `idempotency_key` kwarg.
- Destination charges set `transfer_data.destination` plus
  `application_fee_amount` so the platform keeps its commission.
- Webhook verification uses `stripe.Webhook.construct_event` with the
  `Stripe-Signature` header.
"""
from __future__ import annotations

from typing import Any, Optional

from application.dtos.payments import (
    CreatePayment,
    PaymentIntent,
    RefundRequest,
    RefundResult,
    QueryPayment,
    TransferRequest,
    TransferResult,
    WebhookEvent,
)
from domain.common.exceptions import PaymentGatewayException
from domain.common.money import to_minor_units
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentSignatureError,
)
from core.settings import payment_settings
from core.logging_config import get_logger


logger = get_logger(__name__)

try:  # optional import to keep repo install-light
    import stripe  # type: ignore
except Exception:  # pragma: no cover - graceful degradation
    stripe = None  # type: ignore


def _as_dict(obj: Any) -> dict[str, Any]:
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return dict(obj)
    return {k: obj[k] for k in obj.keys()}


class StripeClient(BasePaymentClient):
    provider = "stripe"

    def __init__(self):
        super().__init__(
            retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
        )
        if not stripe:
            raise RuntimeError("stripe SDK not installed. Add 'stripe' to requirements and install.")
        if not payment_settings.stripe.secret_key:
            raise RuntimeError("STRIPE__SECRET_KEY not configured")
        # Configure module-level key for compatibility across SDK variants
        stripe.api_key = payment_settings.stripe.secret_key
        stripe.max_network_retries = payment_settings.stripe.max_network_retries

    def _transient_errors(self) -> tuple[type[BaseException], ...]:
        return (stripe.APIConnectionError, stripe.RateLimitError)

    def _to_intent(self, pi: Any) -> PaymentIntent:
        raw_status = str(pi["status"])  # type: ignore[index]
        return PaymentIntent(
            intent_id=str(pi["id"]),  # type: ignore[index]
            status=self._map_status(raw_status),
            raw_status=raw_status,
            provider=self.provider,
            client_secret=pi.get("client_secret"),
            amount_minor=pi.get("amount"),
            currency=str(pi.get("currency") or "").upper() or None,
            metadata={str(k): str(v) for k, v in _as_dict(pi.get("metadata")).items()},
            provider_ref=str(pi.get("latest_charge") or "") or None,
        )

    async def create_payment(self, req: CreatePayment) -> PaymentIntent:  # type: ignore[override]
        metadata = {k: str(v) for k, v in (req.metadata or {}).items()}
        metadata.setdefault("reference", req.reference)
        params: dict[str, Any] = {
            "amount": to_minor_units(req.amount, req.currency),
            "currency": req.currency.lower(),
            "metadata": metadata,
            "automatic_payment_methods": {"enabled": True},
        }
        if req.description:
            params["description"] = req.description
        if req.destination_account:
            params["transfer_data"] = {"destination": req.destination_account}
            params["application_fee_amount"] = to_minor_units(req.application_fee_amount or 0, req.currency)

        try:
            pi = await self._retry(
                lambda: stripe.PaymentIntent.create(idempotency_key=req.idempotency_key, **params)
            )
        except stripe.StripeError as exc:
            logger.warning(
                "stripe_create_intent_failed",
                reference=req.reference,
                destination=bool(req.destination_account),
                error=str(exc),
            )
            raise PaymentGatewayException(
                getattr(exc, "user_message", None) or str(exc),
                details={"provider": self.provider, "provider_code": getattr(exc, "code", None)},
            ) from exc
        intent = self._to_intent(pi)
        self._log(
            "stripe_intent_created",
            intent_id=intent.intent_id,
            reference=req.reference,
            amount_minor=intent.amount_minor,
            destination=bool(req.destination_account),
        )
        return intent

    async def query_payment(self, query: QueryPayment) -> PaymentIntent:  # type: ignore[override]
        try:
            pi = await self._retry(lambda: stripe.PaymentIntent.retrieve(query.intent_id))
        except stripe.StripeError as exc:
            raise PaymentGatewayException(
                str(exc),
                details={"provider": self.provider, "payment_intent_id": query.intent_id},
            ) from exc
        return self._to_intent(pi)

    async def refund(self, req: RefundRequest) -> RefundResult:  # type: ignore[override]
        params: dict[str, Any] = {
            "payment_intent": req.intent_id,
            "metadata": {"reason": req.reason or ""},
        }
        if req.amount is not None:
            params["amount"] = to_minor_units(req.amount, req.currency)
        try:
            refund = await self._retry(
                lambda: stripe.Refund.create(idempotency_key=req.idempotency_key, **params)
            )
        except stripe.StripeError as exc:
            raise PaymentProviderError(str(exc), provider=self.provider, provider_code=getattr(exc, "code", None)) from exc
        self._log("stripe_refund_created", refund_id=refund["id"], intent_id=req.intent_id)
        return RefundResult(
            refund_id=str(refund["id"]),  # type: ignore[index]
            status=self._map_status(str(refund.get("status", ""))),
            provider=self.provider,
            provider_ref=str(refund.get("charge") or "") or None,
        )

    async def create_transfer(self, req: TransferRequest) -> TransferResult:  # type: ignore[override]
        try:
            transfer = await self._retry(
                lambda: stripe.Transfer.create(
                    amount=to_minor_units(req.amount, req.currency),
                    currency=req.currency.lower(),
                    destination=req.destination_account,
                    description=req.description,
                    metadata={k: str(v) for k, v in (req.metadata or {}).items()},
                    idempotency_key=req.idempotency_key,
                )
            )
        except stripe.StripeError as exc:
            recoverable = isinstance(exc, self._transient_errors())
            logger.warning(
                "stripe_transfer_failed",
                destination=req.destination_account,
                idempotency_key=req.idempotency_key,
                recoverable=recoverable,
                error=str(exc),
            )
            return TransferResult(success=False, error=str(exc), recoverable=recoverable)
        self._log("stripe_transfer_created", transfer_id=transfer["id"], destination=req.destination_account)
        return TransferResult(success=True, transfer_id=str(transfer["id"]))

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:  # type: ignore[override]
        secret = payment_settings.stripe.webhook_secret
        if not secret or not signature:
            return False
        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8") if isinstance(payload, bytes) else payload,
                signature,
                secret,
                tolerance=payment_settings.webhook.tolerance_seconds,
            )
        except stripe.SignatureVerificationError:
            return False
        return True

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:  # type: ignore[override]
        secret = payment_settings.stripe.webhook_secret
        if not secret:
            raise PaymentSignatureError("Missing STRIPE__WEBHOOK_SECRET", provider=self.provider)
        sig: Optional[str] = headers.get("Stripe-Signature") or headers.get("stripe-signature")
        if not sig:
            raise PaymentSignatureError("Missing Stripe-Signature header", provider=self.provider)
        try:
            event = stripe.Webhook.construct_event(
                payload=body,
                sig_header=sig,
                secret=secret,
                tolerance=payment_settings.webhook.tolerance_seconds,
            )
        except (stripe.SignatureVerificationError, ValueError) as exc:
            raise PaymentSignatureError(str(exc), provider=self.provider) from exc
        data = event.get("data") or {}
        return WebhookEvent(
            id=str(event.get("id")),
            type=str(event.get("type")),
            provider=self.provider,
            data={"object": _as_dict(data.get("object"))},
            raw_headers=dict(headers),
            raw_body=body,
        )
