from decimal import Decimal

import pytest
from sqlalchemy import func, select

from application.dto import PurchaseQuoteDTO, PurchaseRequestDTO
from application.dtos.payments import WebhookEvent
from domain.code_batch.entity import PaymentMethod
from domain.common.exceptions import (
    AccInactiveException,
    CourseNotFoundException,
    DiscountInvalidException,
    DomainValidationException,
    ForbiddenException,
    NotAuthorizedForAccException,
    PaymentVerificationException,
    PricingNotFoundException,
    PurchaseAlreadyProcessedException,
)
from domain.common.party import Actor, PartyRef
from domain.ledger.entity import PaymentType, TransactionStatus
from infrastructure.models import CertificateCodeModel, CodeBatchModel, CommissionLedgerModel, TransactionModel
from infrastructure.repositories.ledger_repository import SQLAlchemyCommissionLedgerRepository


@pytest.mark.asyncio
async def test_quote_applies_discount_and_commission(orchestrator):
    validation, price = await orchestrator.quote(
        1, PurchaseQuoteDTO(acc_id=1, course_id=10, quantity=10, discount_code="save20")
    )
    assert validation.acc.id == 1
    assert price.total_amount == Decimal("1000.00")
    assert price.discount_amount == Decimal("200.00")
    assert price.final_amount == Decimal("800.00")
    assert price.commission_amount == Decimal("80.00")
    assert price.provider_amount == Decimal("720.00")
    assert price.discount_code == "SAVE20"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "tc_id,acc_id,course_id,exc_type",
    [
        (1, 2, 20, AccInactiveException),
        (2, 1, 10, NotAuthorizedForAccException),
        (1, 1, 30, CourseNotFoundException),
        (1, 1, 11, PricingNotFoundException),
    ],
)
async def test_quote_rejects_ineligible_requests(orchestrator, tc_id, acc_id, course_id, exc_type):
    with pytest.raises(exc_type):
        await orchestrator.quote(tc_id, PurchaseQuoteDTO(acc_id=acc_id, course_id=course_id, quantity=1))


@pytest.mark.asyncio
@pytest.mark.parametrize("code,reason", [("OLD", "expired"), ("NOPE", "not_found")])
async def test_invalid_discount_is_a_hard_error(orchestrator, code, reason):
    with pytest.raises(DiscountInvalidException) as exc:
        await orchestrator.quote(1, PurchaseQuoteDTO(acc_id=1, course_id=10, quantity=1, discount_code=code))
    assert exc.value.discount_reason == reason


@pytest.mark.asyncio
async def test_quantity_is_bounded(orchestrator):
    with pytest.raises(DomainValidationException) as exc:
        await orchestrator.quote(1, PurchaseQuoteDTO(acc_id=1, course_id=10, quantity=100000))
    assert exc.value.field == "quantity"


@pytest.mark.asyncio
async def test_intent_uses_destination_charge_when_acc_is_connected(orchestrator, gateway, tc_actor):
    validation, price = await orchestrator.quote(1, PurchaseQuoteDTO(acc_id=1, course_id=10, quantity=3))
    intent = await orchestrator.create_payment_intent(validation, price, tc_actor)

    assert intent.payment_type == PaymentType.DESTINATION_CHARGE.value
    req = gateway.created[0]
    assert req.destination_account == "acct_acc1"
    assert req.application_fee_amount == Decimal("30.00")
    assert req.metadata["payer_id"] == "1" and req.metadata["quantity"] == "3"
    assert len(req.idempotency_key) == 64


@pytest.mark.asyncio
async def test_intent_falls_back_to_standard_charge(orchestrator, gateway, tc_actor):
    gateway.fail_destination = True
    validation, price = await orchestrator.quote(1, PurchaseQuoteDTO(acc_id=1, course_id=10, quantity=1))
    intent = await orchestrator.create_payment_intent(validation, price, tc_actor)
    assert intent.payment_type == PaymentType.STANDARD.value
    assert gateway.created[0].destination_account is None


@pytest.mark.asyncio
async def test_intent_requires_matching_training_center(orchestrator):
    validation, price = await orchestrator.quote(1, PurchaseQuoteDTO(acc_id=1, course_id=10, quantity=1))
    other = Actor(user_id=602, party=PartyRef.training_center(2))
    with pytest.raises(ForbiddenException):
        await orchestrator.create_payment_intent(validation, price, other)


@pytest.mark.asyncio
async def test_card_purchase_mints_codes_and_records_ledger(card_purchase, uow_factory, publisher, scheduler):
    result = await card_purchase(quantity=3)

    assert result.payment_status == "completed"
    assert result.final_amount == Decimal("300.00")
    assert len(result.codes) == 3 and len(set(result.codes)) == 3
    assert all(len(c) == 12 and c.isalnum() and c.upper() == c for c in result.codes)
    assert publisher.names == ["CodePurchaseCompleted"]
    # destination charge: the processor already paid the ACC
    assert scheduler.transactions == []

    async with uow_factory(readonly=True) as uow:
        txn = await uow.transaction_repository.get_by_id(result.transaction_id)
        entry = await uow.ledger_repository.get_by_transaction(result.transaction_id)
        codes = await uow.code_repository.list_by_batch(result.batch_id)
    assert txn.status == TransactionStatus.COMPLETED
    assert txn.payment_type == PaymentType.DESTINATION_CHARGE
    assert entry.group_commission_amount == Decimal("30.00")
    assert entry.acc_commission_amount == Decimal("270.00")
    assert {c.code for c in codes} == set(result.codes)
    assert all(c.purchased_price == Decimal("100.00") for c in codes)


@pytest.mark.asyncio
async def test_standard_card_purchase_schedules_transfer(card_purchase, gateway, scheduler):
    gateway.fail_destination = True
    result = await card_purchase(quantity=1)
    assert scheduler.transactions == [result.transaction_id]


@pytest.mark.asyncio
async def test_quantity_discount_consumed_once(card_purchase, uow_factory):
    result = await card_purchase(quantity=2, discount_code="LIMITED10")
    assert result.discount_amount == Decimal("20.00")

    async with uow_factory(readonly=True) as uow:
        discount = await uow.discount_repository.get_by_code(1, "LIMITED10")
    assert discount.used_quantity == 1

    with pytest.raises(DiscountInvalidException) as exc:
        await card_purchase(quantity=1, discount_code="LIMITED10")
    assert exc.value.discount_reason == "depleted"


@pytest.mark.asyncio
async def test_same_intent_cannot_be_processed_twice(orchestrator, gateway, tc_actor):
    quote = PurchaseQuoteDTO(acc_id=1, course_id=10, quantity=1)
    validation, price = await orchestrator.quote(1, quote)
    intent = await orchestrator.create_payment_intent(validation, price, tc_actor)
    gateway.succeed(intent.payment_intent_id)
    request = PurchaseRequestDTO(
        **quote.model_dump(), payment_method=PaymentMethod.CREDIT_CARD, payment_intent_id=intent.payment_intent_id
    )
    await orchestrator.purchase(tc_actor, 1, request)
    with pytest.raises(PurchaseAlreadyProcessedException):
        await orchestrator.purchase(tc_actor, 1, request)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides,reason",
    [
        ({}, "payment_not_confirmed"),
        ({"status": "processing", "raw_status": "processing"}, "payment_processing"),
        ({"status": "succeeded", "raw_status": "succeeded", "amount_minor": 1}, "amount_mismatch"),
    ],
)
async def test_unverified_intent_creates_nothing(orchestrator, gateway, tc_actor, uow_factory, overrides, reason):
    quote = PurchaseQuoteDTO(acc_id=1, course_id=10, quantity=1)
    validation, price = await orchestrator.quote(1, quote)
    intent = await orchestrator.create_payment_intent(validation, price, tc_actor)
    if overrides:
        gateway.succeed(intent.payment_intent_id, **overrides)

    request = PurchaseRequestDTO(
        **quote.model_dump(), payment_method=PaymentMethod.CREDIT_CARD, payment_intent_id=intent.payment_intent_id
    )
    with pytest.raises(PaymentVerificationException) as exc:
        await orchestrator.purchase(tc_actor, 1, request)
    assert exc.value.verification_reason == reason

    async with uow_factory(readonly=True) as uow:
        assert await uow.batch_repository.get_by_payment_intent(intent.payment_intent_id) is None
        assert await uow.transaction_repository.get_by_gateway_id(intent.payment_intent_id) is None


@pytest.mark.asyncio
async def test_intent_for_other_quantity_is_rejected(orchestrator, gateway, tc_actor):
    validation, price = await orchestrator.quote(1, PurchaseQuoteDTO(acc_id=1, course_id=10, quantity=2))
    intent = await orchestrator.create_payment_intent(validation, price, tc_actor)
    gateway.succeed(intent.payment_intent_id, amount_minor=10000)

    request = PurchaseRequestDTO(
        acc_id=1, course_id=10, quantity=1,
        payment_method=PaymentMethod.CREDIT_CARD, payment_intent_id=intent.payment_intent_id,
    )
    with pytest.raises(PaymentVerificationException) as exc:
        await orchestrator.purchase(tc_actor, 1, request)
    assert exc.value.verification_reason == "metadata_mismatch"


@pytest.mark.asyncio
async def test_card_purchase_requires_intent_and_positive_amount(orchestrator, tc_actor):
    with pytest.raises(DomainValidationException) as exc:
        await orchestrator.purchase(
            tc_actor, 1,
            PurchaseRequestDTO(acc_id=1, course_id=10, quantity=1, payment_method=PaymentMethod.CREDIT_CARD),
        )
    assert exc.value.field == "payment_intent_id"

    validation, price = await orchestrator.quote(
        1, PurchaseQuoteDTO(acc_id=1, course_id=10, quantity=1, discount_code="FREE")
    )
    assert price.final_amount == Decimal("0.00")
    with pytest.raises(DomainValidationException) as exc:
        await orchestrator.create_payment_intent(validation, price, tc_actor)
    assert exc.value.field == "final_amount"


async def _captured_intent(orchestrator, gateway, tc_actor, quote):
    validation, price = await orchestrator.quote(1, quote)
    intent = await orchestrator.create_payment_intent(validation, price, tc_actor)
    gateway.succeed(intent.payment_intent_id)
    request = PurchaseRequestDTO(
        **quote.model_dump(), payment_method=PaymentMethod.CREDIT_CARD, payment_intent_id=intent.payment_intent_id
    )
    return request, validation, price


@pytest.mark.asyncio
async def test_depleted_discount_after_capture_is_refunded_on_webhook(
    orchestrator, event_handler, gateway, tc_actor, uow_factory, publisher
):
    quote = PurchaseQuoteDTO(acc_id=1, course_id=10, quantity=1, discount_code="LIMITED10")
    first = await _captured_intent(orchestrator, gateway, tc_actor, quote)
    second = await _captured_intent(orchestrator, gateway, tc_actor, quote)
    second_intent = second[0].payment_intent_id

    await orchestrator.process_purchase(*first, tc_actor)

    event = WebhookEvent(
        id="evt_1", type="payment_intent.succeeded", provider="fake", data={"object": {"id": second_intent}}
    )
    assert await event_handler.handle_event(event) is True
    assert [r.intent_id for r in gateway.refunds] == [second_intent]
    assert gateway.refunds[0].amount is None

    # redelivery and a late client confirmation leave the refund as is
    assert await event_handler.handle_event(event) is True
    with pytest.raises(DiscountInvalidException):
        await orchestrator.purchase(tc_actor, 1, second[0])
    assert len(gateway.refunds) == 1

    async with uow_factory(readonly=True) as uow:
        txn = await uow.transaction_repository.get_by_gateway_id(second_intent)
        assert await uow.batch_repository.get_by_payment_intent(second_intent) is None
        discount = await uow.discount_repository.get_by_code(1, "LIMITED10")
    assert txn.status == TransactionStatus.FAILED
    assert txn.failure_reason == "discount_depleted; refunded re_1"
    assert txn.reference_id is None
    assert discount.used_quantity == 1
    assert publisher.names == ["CodePurchaseCompleted"]


@pytest.mark.asyncio
async def test_depleted_discount_after_capture_is_refunded_on_client_confirmation(
    orchestrator, event_handler, gateway, tc_actor, uow_factory
):
    quote = PurchaseQuoteDTO(acc_id=1, course_id=10, quantity=2, discount_code="LIMITED10")
    first = await _captured_intent(orchestrator, gateway, tc_actor, quote)
    second = await _captured_intent(orchestrator, gateway, tc_actor, quote)
    second_intent = second[0].payment_intent_id

    await orchestrator.process_purchase(*first, tc_actor)
    with pytest.raises(DiscountInvalidException) as exc:
        await orchestrator.process_purchase(*second, tc_actor)
    assert exc.value.discount_reason == "depleted"
    assert [r.intent_id for r in gateway.refunds] == [second_intent]

    event = WebhookEvent(
        id="evt_2", type="payment_intent.succeeded", provider="fake", data={"object": {"id": second_intent}}
    )
    assert await event_handler.handle_event(event) is True
    assert len(gateway.refunds) == 1

    async with uow_factory(readonly=True) as uow:
        txn = await uow.transaction_repository.get_by_gateway_id(second_intent)
        assert await uow.batch_repository.get_by_payment_intent(second_intent) is None
    assert txn.status == TransactionStatus.FAILED
    assert txn.amount == Decimal("180.00")


async def _row_counts(session_factory):
    async with session_factory() as session:
        return [
            await session.scalar(select(func.count()).select_from(model))
            for model in (CodeBatchModel, CertificateCodeModel, TransactionModel, CommissionLedgerModel)
        ]


@pytest.mark.asyncio
async def test_failure_after_minting_rolls_back_everything(
    card_purchase, monkeypatch, session_factory, uow_factory, publisher, gateway
):
    async def _ledger_down(self, entry):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(SQLAlchemyCommissionLedgerRepository, "create", _ledger_down)
    with pytest.raises(RuntimeError):
        await card_purchase(quantity=2, discount_code="LIMITED10")

    assert await _row_counts(session_factory) == [0, 0, 0, 0]
    async with uow_factory(readonly=True) as uow:
        discount = await uow.discount_repository.get_by_code(1, "LIMITED10")
    assert discount.used_quantity == 0
    assert publisher.names == []
    assert gateway.refunds == []
