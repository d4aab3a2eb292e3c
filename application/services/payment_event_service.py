"""
Payment provider events and refunds.

Webhook events arrive already signature-verified (see PaymentService.handle_webhook).
Every handler is idempotent: repeated deliveries of the same event leave the
stored state unchanged.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Callable, Optional

from application.dtos.payments import RefundRequest, RefundResult, WebhookEvent
from application.services.code_purchase_service import CodeBatchPurchaseOrchestrator
from application.services.payment_service import PaymentService
from core.logging_config import get_logger
from domain.common.exceptions import (
    ForbiddenException,
    TransactionNotFoundException,
    TransactionNotRefundableException,
)
from domain.common.party import Actor
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.ledger.entity import Transaction, TransactionStatus


logger = get_logger(__name__)


class PaymentEventHandler:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        payment_service: PaymentService,
        orchestrator: CodeBatchPurchaseOrchestrator,
    ):
        self._uow_factory = uow_factory
        self._payments = payment_service
        self._orchestrator = orchestrator
        self._handlers = {
            "payment_intent.succeeded": self._on_intent_succeeded,
            "payment_intent.payment_failed": self._on_intent_failed,
            "payment_intent.canceled": self._on_intent_failed,
            "charge.refunded": self._on_charge_refunded,
            "charge.dispute.created": self._on_dispute_created,
        }

    async def handle_event(self, event: WebhookEvent) -> bool:
        """Dispatch on event type; returns False when the type is not handled."""
        handler = self._handlers.get(event.type)
        if handler is None:
            logger.info("payment_event_ignored", event_id=event.id, event_type=event.type)
            return False
        await handler(event)
        return True

    async def _on_intent_succeeded(self, event: WebhookEvent) -> None:
        intent_id = event.object.get("id")
        if not intent_id:
            logger.warning("payment_event_missing_object", event_id=event.id, event_type=event.type)
            return
        result = await self._orchestrator.confirm_card_payment(str(intent_id))
        logger.info(
            "payment_intent_succeeded_handled",
            event_id=event.id,
            payment_intent_id=intent_id,
            batch_id=result.batch_id if result else None,
        )

    async def _on_intent_failed(self, event: WebhookEvent) -> None:
        """Log-only: card transactions are recorded once the payment succeeds, so a
        failed or canceled intent has no stored state to change."""
        obj = event.object
        error = obj.get("last_payment_error") or {}
        logger.info(
            "payment_intent_not_completed",
            event_id=event.id,
            event_type=event.type,
            payment_intent_id=obj.get("id"),
            reason=(error.get("message") if isinstance(error, dict) else None) or obj.get("cancellation_reason"),
            payer_id=(obj.get("metadata") or {}).get("payer_id"),
        )

    async def _on_charge_refunded(self, event: WebhookEvent) -> None:
        intent_id = event.object.get("payment_intent")
        changed = False
        async with self._uow_factory() as uow:
            transaction = (
                await uow.transaction_repository.get_by_gateway_id(str(intent_id), for_update=True)
                if intent_id
                else None
            )
            if transaction is None:
                logger.info("charge_refunded_no_transaction", event_id=event.id, payment_intent_id=intent_id)
                return
            # refunds issued by this service may already have been recorded
            if transaction.status == TransactionStatus.COMPLETED:
                changed = await self._record_refund(uow, transaction)
        logger.info(
            "charge_refunded_handled",
            event_id=event.id,
            transaction_id=transaction.id,
            changed=changed,
        )

    @staticmethod
    async def _record_refund(uow: AbstractUnitOfWork, transaction: Transaction) -> bool:
        transaction.mark_refunded()
        return await uow.transaction_repository.transition_status(
            transaction.id,
            TransactionStatus.COMPLETED,
            transaction.status,
            refunded_at=transaction.refunded_at,
        )

    async def _on_dispute_created(self, event: WebhookEvent) -> None:
        obj = event.object
        logger.warning(
            "charge_dispute_created",
            event_id=event.id,
            charge_id=obj.get("charge"),
            payment_intent_id=obj.get("payment_intent"),
            amount_minor=obj.get("amount"),
            reason=obj.get("reason"),
        )

    async def refund(
        self,
        transaction_id: int,
        actor: Actor,
        amount: Optional[Decimal] = None,
        reason: Optional[str] = None,
    ) -> tuple[Transaction, RefundResult]:
        """Refund a completed card transaction through the gateway (group admins only)."""
        if not actor.is_group_admin:
            raise ForbiddenException("Only group admins can refund transactions")

        async with self._uow_factory(readonly=True) as uow:
            transaction = await uow.transaction_repository.get_by_id(transaction_id)
        if transaction is None:
            raise TransactionNotFoundException(transaction_id)
        if transaction.status != TransactionStatus.COMPLETED or not transaction.payment_gateway_transaction_id:
            raise TransactionNotRefundableException(transaction_id, transaction.status.value)

        result = await self._payments.refund(
            RefundRequest(
                intent_id=transaction.payment_gateway_transaction_id,
                amount=amount,
                currency=transaction.currency,
                reason=reason,
            )
        )
        async with self._uow_factory() as uow:
            transaction = await uow.transaction_repository.get_by_id(transaction_id, for_update=True)
            # charge.refunded may already have been processed
            if transaction.status == TransactionStatus.COMPLETED:
                await self._record_refund(uow, transaction)

        logger.info(
            "transaction_refunded",
            transaction_id=transaction_id,
            refund_id=result.refund_id,
            amount=str(amount) if amount is not None else "full",
            refunded_by=actor.user_id,
        )
        return transaction, result
