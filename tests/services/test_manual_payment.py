from decimal import Decimal

import pytest
from pydantic import ValidationError

from application.dto import ApproveManualPaymentDTO, PurchaseQuoteDTO, PurchaseRequestDTO, ReceiptUpload
from domain.code_batch.entity import BatchPaymentStatus, PaymentMethod
from domain.common.exceptions import (
    AmountMismatchException,
    BatchNotPendingException,
    DiscountInvalidException,
    DomainValidationException,
    ForbiddenException,
    NotManualPaymentException,
    ReceiptRequiredException,
)
from domain.common.party import Actor, PartyRef
from domain.discount.entity import DiscountStatus
from domain.ledger.entity import TransactionStatus
from infrastructure.repositories.ledger_repository import SQLAlchemyCommissionLedgerRepository


RECEIPT = ReceiptUpload(data=b"%PDF-1.4 bank slip", filename="slip.pdf", content_type="application/pdf")


def _manual(quantity=10, amount="800.00", discount_code="SAVE20", acc_id=1, course_id=10):
    return PurchaseRequestDTO(
        acc_id=acc_id,
        course_id=course_id,
        quantity=quantity,
        discount_code=discount_code,
        payment_method=PaymentMethod.MANUAL_PAYMENT,
        payment_amount=Decimal(amount),
    )


@pytest.fixture
def submit(orchestrator, tc_actor):
    async def _submit(request=None, receipt=RECEIPT):
        return await orchestrator.purchase(tc_actor, 1, request or _manual(), receipt=receipt)

    return _submit


@pytest.mark.asyncio
async def test_submission_stores_pending_batch(submit, receipts, publisher, uow_factory):
    result = await submit()

    assert result.payment_status == BatchPaymentStatus.PENDING.value
    assert result.final_amount == Decimal("800.00")
    assert result.codes == []
    assert len(receipts.files) == 1
    assert publisher.names == ["ManualPaymentSubmitted"]

    async with uow_factory(readonly=True) as uow:
        batch = await uow.batch_repository.get_by_id(result.batch_id)
        txn = await uow.transaction_repository.get_by_id(result.transaction_id)
    assert batch.payment_receipt_url.startswith("/files/receipts/")
    assert batch.payment_amount == Decimal("800.00")
    assert txn.status == TransactionStatus.PENDING


@pytest.mark.asyncio
async def test_submission_within_tolerance_is_accepted(submit):
    result = await submit(_manual(amount="799.99"))
    assert result.payment_status == "pending"


@pytest.mark.asyncio
async def test_amount_mismatch_rejected_before_upload(submit, receipts):
    with pytest.raises(AmountMismatchException) as exc:
        await submit(_manual(amount="750.00"))
    assert exc.value.details["expected_amount"] == "800.00"
    assert exc.value.details["difference"] == "50.00"
    assert receipts.files == {}


@pytest.mark.asyncio
async def test_receipt_and_amount_are_required(submit):
    with pytest.raises(ReceiptRequiredException):
        await submit(receipt=None)
    with pytest.raises(ReceiptRequiredException):
        await submit(receipt=ReceiptUpload(data=b"", filename="empty.pdf", content_type=None))

    request = _manual()
    request.payment_amount = None
    with pytest.raises(DomainValidationException) as exc:
        await submit(request)
    assert exc.value.field == "payment_amount"


@pytest.mark.asyncio
async def test_receipt_removed_when_submission_fails(orchestrator, card_purchase, receipts, tc_actor):
    request = _manual(quantity=1, amount="90.00", discount_code="LIMITED10")
    validation, price = await orchestrator.quote(1, request)
    # the last slot goes to a card purchase while the form is open
    await card_purchase(quantity=1, discount_code="LIMITED10")

    with pytest.raises(DiscountInvalidException):
        await orchestrator.process_purchase(request, validation, price, tc_actor, receipt=RECEIPT)
    assert len(receipts.deleted) == 1
    assert receipts.files == {}


@pytest.mark.asyncio
async def test_approval_mints_codes_and_schedules_transfer(submit, workflow, acc_actor, uow_factory, publisher, scheduler):
    submitted = await submit()
    result = await workflow.approve(submitted.batch_id, Decimal("800.00"), acc_actor)

    assert result.payment_status == "approved"
    assert result.codes_count == 10
    assert result.verified_by == acc_actor.user_id
    assert result.transaction_id == submitted.transaction_id
    assert scheduler.transactions == [submitted.transaction_id]
    assert publisher.names[-1] == "ManualPaymentApproved"
    assert publisher.events[-1].training_center_user_id == 601

    async with uow_factory(readonly=True) as uow:
        batch = await uow.batch_repository.get_by_id(submitted.batch_id)
        codes = await uow.code_repository.list_by_batch(submitted.batch_id)
        txn = await uow.transaction_repository.get_by_id(submitted.transaction_id)
        entry = await uow.ledger_repository.get_by_transaction(submitted.transaction_id)
    assert batch.payment_status == BatchPaymentStatus.APPROVED
    assert len(codes) == 10
    assert all(c.purchased_price == Decimal("80.00") and c.discount_applied for c in codes)
    assert txn.status == TransactionStatus.COMPLETED
    assert entry.group_commission_amount == Decimal("80.00")
    assert entry.acc_commission_amount == Decimal("720.00")


@pytest.mark.asyncio
async def test_batch_is_approved_only_once(submit, workflow, acc_actor, admin):
    submitted = await submit()
    await workflow.approve(submitted.batch_id, Decimal("800.00"), acc_actor)
    with pytest.raises(BatchNotPendingException):
        await workflow.approve(submitted.batch_id, Decimal("800.00"), admin)
    with pytest.raises(BatchNotPendingException):
        await workflow.reject(submitted.batch_id, "late", admin)


@pytest.mark.asyncio
async def test_approval_checks_amount_and_reviewer(submit, workflow, uow_factory):
    submitted = await submit()
    with pytest.raises(AmountMismatchException):
        await workflow.approve(submitted.batch_id, Decimal("700.00"), Actor(user_id=501, party=PartyRef.acc(1)))
    with pytest.raises(ForbiddenException):
        await workflow.approve(submitted.batch_id, Decimal("800.00"), Actor(user_id=503, party=PartyRef.acc(3)))

    async with uow_factory(readonly=True) as uow:
        batch = await uow.batch_repository.get_by_id(submitted.batch_id)
        assert await uow.code_repository.count_by_batch(submitted.batch_id) == 0
    assert batch.payment_status == BatchPaymentStatus.PENDING


@pytest.mark.asyncio
async def test_card_batches_are_not_reviewable(card_purchase, workflow, admin):
    result = await card_purchase(quantity=1)
    with pytest.raises(NotManualPaymentException):
        await workflow.approve(result.batch_id, Decimal("100.00"), admin)


@pytest.mark.asyncio
async def test_rejection_releases_reserved_discount(submit, workflow, acc_actor, uow_factory, publisher):
    submitted = await submit(_manual(quantity=1, amount="90.00", discount_code="LIMITED10"))
    async with uow_factory(readonly=True) as uow:
        reserved = await uow.discount_repository.get_by_code(1, "LIMITED10")
    assert reserved.used_quantity == 1 and reserved.status == DiscountStatus.DEPLETED

    with pytest.raises(DomainValidationException):
        await workflow.reject(submitted.batch_id, "   ", acc_actor)

    result = await workflow.reject(submitted.batch_id, "Receipt unreadable", acc_actor)
    assert result.payment_status == "rejected"
    assert result.rejection_reason == "Receipt unreadable"
    assert publisher.names[-1] == "ManualPaymentRejected"

    async with uow_factory(readonly=True) as uow:
        released = await uow.discount_repository.get_by_code(1, "LIMITED10")
        batch = await uow.batch_repository.get_by_id(submitted.batch_id)
        txn = await uow.transaction_repository.get_by_id(submitted.transaction_id)
    assert released.used_quantity == 0 and released.status == DiscountStatus.ACTIVE
    assert batch.payment_status == BatchPaymentStatus.REJECTED
    assert txn.status == TransactionStatus.FAILED


@pytest.mark.asyncio
async def test_zero_amount_batch_has_no_transaction(submit, workflow, admin, scheduler):
    submitted = await submit(_manual(quantity=2, amount="0", discount_code="FREE"))
    assert submitted.final_amount == Decimal("0.00")
    assert submitted.transaction_id is None

    result = await workflow.approve(submitted.batch_id, Decimal("0"), admin)
    assert result.codes_count == 2
    assert result.transaction_id is None
    assert scheduler.transactions == []


@pytest.mark.asyncio
async def test_pending_list_is_scoped_to_reviewer(submit, workflow, acc_actor):
    submitted = await submit()
    pending = await workflow.list_pending(acc_actor)
    assert [b.id for b in pending] == [submitted.batch_id]
    assert await workflow.list_pending(Actor(user_id=503, party=PartyRef.acc(3))) == []


@pytest.mark.asyncio
async def test_claimed_amount_beyond_tolerance_by_fraction_is_rejected(submit, workflow, acc_actor, uow_factory):
    submitted = await submit()
    with pytest.raises(AmountMismatchException):
        await workflow.approve(submitted.batch_id, Decimal("800.014"), acc_actor)

    async with uow_factory(readonly=True) as uow:
        batch = await uow.batch_repository.get_by_id(submitted.batch_id)
    assert batch.payment_status == BatchPaymentStatus.PENDING


def test_amounts_with_more_than_two_decimals_are_refused():
    with pytest.raises(ValidationError):
        ApproveManualPaymentDTO(claimed_amount="800.014")
    with pytest.raises(ValidationError):
        _manual(amount="800.014")
    assert ApproveManualPaymentDTO(claimed_amount="800.01").claimed_amount == Decimal("800.01")


@pytest.mark.asyncio
async def test_approval_failure_after_minting_leaves_batch_pending(
    submit, workflow, acc_actor, uow_factory, monkeypatch, scheduler
):
    submitted = await submit()

    async def _ledger_down(self, entry):
        raise RuntimeError("ledger unavailable")

    monkeypatch.setattr(SQLAlchemyCommissionLedgerRepository, "create", _ledger_down)
    with pytest.raises(RuntimeError):
        await workflow.approve(submitted.batch_id, Decimal("800.00"), acc_actor)

    async with uow_factory(readonly=True) as uow:
        batch = await uow.batch_repository.get_by_id(submitted.batch_id)
        txn = await uow.transaction_repository.get_by_id(submitted.transaction_id)
        assert await uow.code_repository.count_by_batch(submitted.batch_id) == 0
    assert batch.payment_status == BatchPaymentStatus.PENDING
    assert batch.verified_by is None
    assert txn.status == TransactionStatus.PENDING
    assert scheduler.transactions == []

    monkeypatch.undo()
    result = await workflow.approve(submitted.batch_id, Decimal("800.00"), acc_actor)
    assert result.codes_count == 10
