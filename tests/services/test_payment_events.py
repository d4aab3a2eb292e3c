from decimal import Decimal

import pytest

from application.dto import PurchaseQuoteDTO
from application.dtos.payments import WebhookEvent
from domain.common.exceptions import ForbiddenException, TransactionNotRefundableException
from domain.ledger.entity import TransactionStatus


def _event(event_type, obj, event_id="evt_1"):
    return WebhookEvent(id=event_id, type=event_type, provider="fake", data={"object": obj})


async def _intent_id_of(uow_factory, transaction_id):
    async with uow_factory(readonly=True) as uow:
        txn = await uow.transaction_repository.get_by_id(transaction_id)
    return txn.payment_gateway_transaction_id


@pytest.mark.asyncio
async def test_succeeded_event_completes_purchase_once(orchestrator, event_handler, gateway, tc_actor, uow_factory, publisher):
    validation, price = await orchestrator.quote(
        1, PurchaseQuoteDTO(acc_id=1, course_id=10, quantity=4, discount_code="SAVE20")
    )
    intent = await orchestrator.create_payment_intent(validation, price, tc_actor)
    gateway.succeed(intent.payment_intent_id)

    event = _event("payment_intent.succeeded", {"id": intent.payment_intent_id})
    assert await event_handler.handle_event(event) is True
    assert await event_handler.handle_event(event) is True

    async with uow_factory(readonly=True) as uow:
        batch = await uow.batch_repository.get_by_payment_intent(intent.payment_intent_id)
        codes = await uow.code_repository.list_by_batch(batch.id)
        txn = await uow.transaction_repository.get_by_gateway_id(intent.payment_intent_id)
    assert batch.final_amount == Decimal("320.00")
    assert batch.created_by is None
    assert len(codes) == 4
    assert txn.status == TransactionStatus.COMPLETED
    assert publisher.names.count("CodePurchaseCompleted") == 1


@pytest.mark.asyncio
async def test_succeeded_event_after_client_confirmation_is_noop(card_purchase, event_handler, uow_factory, publisher):
    purchase = await card_purchase(quantity=1)
    intent_id = await _intent_id_of(uow_factory, purchase.transaction_id)
    assert await event_handler.handle_event(_event("payment_intent.succeeded", {"id": intent_id}))
    assert publisher.names == ["CodePurchaseCompleted"]


@pytest.mark.asyncio
async def test_charge_refunded_marks_transaction(card_purchase, event_handler, uow_factory):
    purchase = await card_purchase(quantity=1)
    intent_id = await _intent_id_of(uow_factory, purchase.transaction_id)

    event = _event("charge.refunded", {"id": "ch_1", "payment_intent": intent_id})
    assert await event_handler.handle_event(event)
    assert await event_handler.handle_event(event)

    async with uow_factory(readonly=True) as uow:
        txn = await uow.transaction_repository.get_by_id(purchase.transaction_id)
    assert txn.status == TransactionStatus.REFUNDED
    assert txn.refunded_at is not None


@pytest.mark.asyncio
async def test_unmatched_and_unknown_events(event_handler):
    assert await event_handler.handle_event(_event("payment_intent.payment_failed", {"id": "pi_missing"}))
    assert await event_handler.handle_event(_event("charge.dispute.created", {"charge": "ch_9", "amount": 500}))
    assert await event_handler.handle_event(_event("customer.created", {"id": "cus_1"})) is False


@pytest.mark.asyncio
async def test_refund_through_gateway(card_purchase, event_handler, gateway, admin, tc_actor):
    purchase = await card_purchase(quantity=2)

    with pytest.raises(ForbiddenException):
        await event_handler.refund(purchase.transaction_id, tc_actor)

    txn, result = await event_handler.refund(purchase.transaction_id, admin, Decimal("50.00"), "duplicate order")
    assert txn.status == TransactionStatus.REFUNDED
    assert result.refund_id == "re_1"
    req = gateway.refunds[0]
    assert req.amount == Decimal("50.00") and req.currency == "USD"
    assert len(req.idempotency_key) == 64

    with pytest.raises(TransactionNotRefundableException):
        await event_handler.refund(purchase.transaction_id, admin)


@pytest.mark.asyncio
async def test_failed_or_canceled_intent_leaves_stored_state_alone(
    orchestrator, card_purchase, event_handler, gateway, tc_actor, uow_factory
):
    purchase = await card_purchase(quantity=1)
    paid_intent = await _intent_id_of(uow_factory, purchase.transaction_id)
    validation, price = await orchestrator.quote(1, PurchaseQuoteDTO(acc_id=1, course_id=10, quantity=1))
    abandoned = await orchestrator.create_payment_intent(validation, price, tc_actor)

    failed = {"id": paid_intent, "last_payment_error": {"message": "card declined"}, "metadata": {"payer_id": "1"}}
    assert await event_handler.handle_event(_event("payment_intent.payment_failed", failed))
    assert await event_handler.handle_event(
        _event("payment_intent.canceled", {"id": abandoned.payment_intent_id, "cancellation_reason": "abandoned"})
    )

    async with uow_factory(readonly=True) as uow:
        txn = await uow.transaction_repository.get_by_id(purchase.transaction_id)
        assert await uow.transaction_repository.get_by_gateway_id(abandoned.payment_intent_id) is None
        assert await uow.batch_repository.get_by_payment_intent(abandoned.payment_intent_id) is None
    assert txn.status == TransactionStatus.COMPLETED
    assert gateway.refunds == []
