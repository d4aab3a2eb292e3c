"""
Payments API routes.

Stripe webhook endpoint and the admin refund action. Keep this thin: no SDK
details here. Webhook redelivery is safe because every handler is idempotent
against the stored transaction state.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.dependencies import get_group_admin, get_payment_event_handler, get_payment_service
from application.dto import RefundTransactionDTO
from application.services.payment_event_service import PaymentEventHandler
from application.services.payment_service import PaymentService
from core.response import success_response
from core.logging_config import get_logger
from domain.common.party import Actor


router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(__name__)


@router.post("/webhooks/stripe", summary="Stripe webhook")
async def stripe_webhook(
    request: Request,
    payments: PaymentService = Depends(get_payment_service),
    handler: PaymentEventHandler = Depends(get_payment_event_handler),
):
    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}
    # Raises PaymentSignatureError (400) before any state is touched
    event = payments.handle_webhook(headers, raw_body)
    handled = await handler.handle_event(event)
    # 2xx acknowledges receipt per provider conventions; errors above make Stripe redeliver
    return success_response(
        data={"id": event.id, "type": event.type, "handled": handled},
        message="Webhook received",
    )


@router.post("/transactions/{transaction_id}/refund", summary="Refund a transaction")
async def refund_transaction(
    transaction_id: int,
    payload: RefundTransactionDTO,
    actor: Actor = Depends(get_group_admin),
    handler: PaymentEventHandler = Depends(get_payment_event_handler),
):
    transaction, result = await handler.refund(transaction_id, actor, amount=payload.amount, reason=payload.reason)
    return success_response(
        data={
            "transaction_id": transaction.id,
            "status": transaction.status.value,
            "refund_id": result.refund_id,
            "refund_status": result.status,
        },
        message="Refund triggered",
    )
