"""
Application service wrapping the payment gateway port.

This class depends only on the application PaymentGateway port and DTOs.
Gateway implementations are provided by infrastructure and must be injected
from the composition root (API/tasks), keeping dependencies one-way.
"""
from __future__ import annotations

import hashlib

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
from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger


logger = get_logger(__name__)


def _ensure_idempotency_key(req: CreatePayment | RefundRequest) -> None:
    if getattr(req, "idempotency_key", None):
        return
    # Stable, reproducible key derived from business identifiers (no timestamp)
    def pick_meta(meta: dict | None) -> str:
        if not meta:
            return ""
        # project-specific stable subset to avoid high cardinality
        keys = [k for k in ("payer_id", "course_id", "quantity", "discount_code") if k in meta]
        if not keys:
            return ""
        parts = [f"{k}={meta[k]}" for k in keys]
        return "|".join(parts)

    if isinstance(req, CreatePayment):
        op = "create"
        base = (
            f"{op}|{req.reference}|{req.amount}|{req.currency}|"
            f"{req.destination_account or ''}|{req.application_fee_amount or ''}|{pick_meta(req.metadata)}"
        )
    else:
        op = "refund"
        base = f"{op}|{req.intent_id}|{req.amount or 'full'}|{req.currency}"
    setattr(req, "idempotency_key", hashlib.sha256(base.encode("utf-8")).hexdigest())


class PaymentService:
    def __init__(self, gateway: PaymentGateway) -> None:
        self.gateway = gateway

    async def create_payment(self, req: CreatePayment) -> PaymentIntent:
        _ensure_idempotency_key(req)
        logger.info(
            "payment_create_request",
            reference=req.reference,
            provider=self.gateway.provider,
            destination=bool(req.destination_account),
            idempotency_key=req.idempotency_key,
        )
        intent = await self.gateway.create_payment(req)
        logger.info(
            "payment_create_response",
            reference=req.reference,
            intent_id=intent.intent_id,
            status=intent.status,
        )
        return intent

    async def query_payment(self, req: QueryPayment) -> PaymentIntent:
        logger.info("payment_query_request", intent_id=req.intent_id, provider=self.gateway.provider)
        return await self.gateway.query_payment(req)

    async def refund(self, req: RefundRequest) -> RefundResult:
        _ensure_idempotency_key(req)
        logger.info("payment_refund_request", intent_id=req.intent_id, provider=self.gateway.provider)
        return await self.gateway.refund(req)

    async def create_transfer(self, req: TransferRequest) -> TransferResult:
        logger.info(
            "transfer_request",
            destination=req.destination_account,
            amount=str(req.amount),
            idempotency_key=req.idempotency_key,
        )
        result = await self.gateway.create_transfer(req)
        logger.info(
            "transfer_response",
            idempotency_key=req.idempotency_key,
            success=result.success,
            transfer_id=result.transfer_id,
        )
        return result

    def handle_webhook(self, headers: dict, body: bytes) -> WebhookEvent:
        event = self.gateway.parse_webhook(headers, body)
        logger.info("payment_webhook_parsed", provider=self.gateway.provider, event_type=event.type, event_id=event.id)
        return event
