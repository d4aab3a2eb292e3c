from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from application.dto import PurchaseRequestDTO, ReceiptUpload
from application.dtos.payments import TransferResult
from domain.code_batch.entity import PaymentMethod
from domain.common.exceptions import (
    ForbiddenException,
    TransactionNotFoundException,
    TransferNotEligibleException,
    TransferNotFoundException,
    TransferNotRetryableException,
)
from domain.transfer.entity import TransferStatus


FAR_FUTURE = datetime(2100, 1, 1, tzinfo=timezone.utc)


def _declined():
    return TransferResult(success=False, error="insufficient platform balance", recoverable=True)


@pytest.fixture
def standard_purchase(card_purchase, gateway):
    """Card purchase the platform collects itself, so the ACC is paid by transfer."""

    async def _buy(**kw):
        gateway.fail_destination = True
        return await card_purchase(**kw)

    return _buy


@pytest.mark.asyncio
async def test_transfer_pays_net_amount(standard_purchase, transfer_manager, gateway, publisher):
    purchase = await standard_purchase(quantity=1)
    transfer = await transfer_manager.create_for_transaction(purchase.transaction_id)

    assert transfer.status == TransferStatus.COMPLETED
    assert transfer.stripe_transfer_id == "tr_1"
    assert (transfer.gross_amount, transfer.commission_amount, transfer.net_amount) == (
        Decimal("100.00"), Decimal("10.00"), Decimal("90.00"))
    req = gateway.transfers[0]
    assert req.destination_account == "acct_acc1"
    assert req.amount == Decimal("90.00")
    assert req.idempotency_key == f"transfer_{transfer.id}_{purchase.transaction_id}"
    assert publisher.names[-1] == "TransferCompleted"


@pytest.mark.asyncio
async def test_existing_transfer_is_reused(standard_purchase, transfer_manager, gateway):
    purchase = await standard_purchase(quantity=1)
    first = await transfer_manager.create_for_transaction(purchase.transaction_id)
    again = await transfer_manager.create_for_transaction(purchase.transaction_id)
    assert again.id == first.id
    assert len(gateway.transfers) == 1


@pytest.mark.asyncio
async def test_failed_transfer_is_scheduled_with_backoff(standard_purchase, transfer_manager, gateway, scheduler, publisher):
    purchase = await standard_purchase(quantity=1)
    gateway.transfer_results = [_declined()]
    transfer = await transfer_manager.create_for_transaction(purchase.transaction_id)

    assert transfer.status == TransferStatus.FAILED
    assert transfer.retry_count == 1
    assert transfer.error_message == "insufficient platform balance"
    assert transfer.next_retry_at is not None
    assert scheduler.retries == [(transfer.id, 60)]
    failed = publisher.events[-1]
    assert failed.name == "TransferFailed" and not failed.final and failed.next_retry_in_seconds == 60

    # a failed-but-retryable transfer is not duplicated
    again = await transfer_manager.create_for_transaction(purchase.transaction_id)
    assert again.id == transfer.id


@pytest.mark.asyncio
async def test_manual_retry_by_group_admin(standard_purchase, transfer_manager, gateway, admin, acc_actor):
    purchase = await standard_purchase(quantity=1)
    gateway.transfer_results = [_declined()]
    transfer = await transfer_manager.create_for_transaction(purchase.transaction_id)

    with pytest.raises(ForbiddenException):
        await transfer_manager.retry(transfer.id, acc_actor)

    retried = await transfer_manager.retry(transfer.id, admin)
    assert retried.status == TransferStatus.COMPLETED
    assert retried.retry_count == 1
    # same key on every attempt so the processor deduplicates
    assert {r.idempotency_key for r in gateway.transfers} == {transfer.idempotency_key}


@pytest.mark.asyncio
async def test_retries_stop_at_max(standard_purchase, transfer_manager, gateway, scheduler, publisher, admin):
    purchase = await standard_purchase(quantity=1)
    gateway.transfer_results = [_declined(), _declined(), _declined()]
    transfer = await transfer_manager.create_for_transaction(purchase.transaction_id)
    await transfer_manager.retry(transfer.id, admin)
    final = await transfer_manager.retry(transfer.id, admin)

    assert final.status == TransferStatus.FAILED
    assert final.retry_count == 3 and not final.can_retry()
    assert final.next_retry_at is None
    assert scheduler.retries == [(transfer.id, 60), (transfer.id, 120)]
    assert publisher.events[-1].final is True

    with pytest.raises(TransferNotRetryableException) as exc:
        await transfer_manager.retry(transfer.id, admin)
    assert exc.value.details["retry_count"] == 3
    assert len(gateway.transfers) == 3


@pytest.mark.asyncio
async def test_retry_due_sweep(standard_purchase, transfer_manager, gateway):
    purchase = await standard_purchase(quantity=1)
    gateway.transfer_results = [_declined()]
    transfer = await transfer_manager.create_for_transaction(purchase.transaction_id)

    assert await transfer_manager.retry_due(now=datetime(2000, 1, 1, tzinfo=timezone.utc)) == 0
    assert await transfer_manager.retry_due(now=FAR_FUTURE) == 1
    assert (await transfer_manager.get(transfer.id)).status == TransferStatus.COMPLETED
    assert await transfer_manager.retry_due(now=FAR_FUTURE) == 0


@pytest.mark.asyncio
async def test_destination_charge_needs_no_transfer(card_purchase, transfer_manager, gateway):
    purchase = await card_purchase(quantity=1)
    assert await transfer_manager.create_for_transaction(purchase.transaction_id) is None
    assert gateway.transfers == []


@pytest.mark.asyncio
async def test_transfer_waits_for_connected_account(card_purchase, transfer_manager, gateway, publisher):
    purchase = await card_purchase(acc_id=3, course_id=30, quantity=2)
    transfer = await transfer_manager.create_for_transaction(purchase.transaction_id)

    assert transfer.status == TransferStatus.PENDING
    assert transfer.net_amount == Decimal("80.00")
    assert gateway.transfers == []
    assert publisher.names[-1] == "TransferAwaitingAccount"
    with pytest.raises(TransferNotEligibleException):
        await transfer_manager.execute(transfer.id)


@pytest.mark.asyncio
async def test_only_completed_purchases_are_eligible(orchestrator, transfer_manager, tc_actor):
    submitted = await orchestrator.purchase(
        tc_actor,
        1,
        PurchaseRequestDTO(
            acc_id=1, course_id=10, quantity=1,
            payment_method=PaymentMethod.MANUAL_PAYMENT, payment_amount=Decimal("100.00"),
        ),
        receipt=ReceiptUpload(data=b"slip", filename="slip.png", content_type="image/png"),
    )
    with pytest.raises(TransferNotEligibleException):
        await transfer_manager.create_for_transaction(submitted.transaction_id)
    with pytest.raises(TransactionNotFoundException):
        await transfer_manager.create_for_transaction(9999)
    with pytest.raises(TransferNotFoundException):
        await transfer_manager.get(9999)


async def _stranded_transfer(standard_purchase, transfer_manager, gateway, uow_factory):
    """Transfer whose worker died during the gateway call, leaving it in processing."""
    purchase = await standard_purchase(quantity=1)

    async def _worker_lost(req):
        raise RuntimeError("worker lost")

    gateway.create_transfer = _worker_lost
    with pytest.raises(RuntimeError):
        await transfer_manager.create_for_transaction(purchase.transaction_id)
    del gateway.create_transfer

    async with uow_factory(readonly=True) as uow:
        (transfer,) = await uow.transfer_repository.list_by_transaction(purchase.transaction_id)
    assert transfer.status == TransferStatus.PROCESSING
    return transfer


@pytest.mark.asyncio
async def test_stale_processing_transfer_is_failed_then_retried(
    standard_purchase, transfer_manager, gateway, uow_factory, publisher
):
    transfer = await _stranded_transfer(standard_purchase, transfer_manager, gateway, uow_factory)

    # still inside the grace period
    assert await transfer_manager.recover_stale(now=datetime.now(timezone.utc)) == 0
    assert (await transfer_manager.get(transfer.id)).status == TransferStatus.PROCESSING

    assert await transfer_manager.recover_stale(now=FAR_FUTURE) == 1
    recovered = await transfer_manager.get(transfer.id)
    assert recovered.status == TransferStatus.FAILED
    assert recovered.retry_count == 1
    assert recovered.error_message == "transfer attempt did not finish"
    assert recovered.next_retry_at == FAR_FUTURE + timedelta(seconds=60)
    stalled = publisher.events[-1]
    assert stalled.name == "TransferFailed" and stalled.final is False

    assert await transfer_manager.recover_stale(now=FAR_FUTURE) == 0
    assert await transfer_manager.retry_due(now=FAR_FUTURE + timedelta(hours=1)) == 1
    done = await transfer_manager.get(transfer.id)
    assert done.status == TransferStatus.COMPLETED
    assert {r.idempotency_key for r in gateway.transfers} == {transfer.idempotency_key}


@pytest.mark.asyncio
async def test_late_outcome_of_recovered_attempt_is_discarded(standard_purchase, transfer_manager, gateway):
    purchase = await standard_purchase(quantity=1)
    original = gateway.create_transfer

    async def _slow_transfer(req):
        # the sweep runs while the gateway call is still in flight
        assert await transfer_manager.recover_stale(now=FAR_FUTURE) == 1
        return await original(req)

    gateway.create_transfer = _slow_transfer
    transfer = await transfer_manager.create_for_transaction(purchase.transaction_id)

    assert transfer.status == TransferStatus.FAILED
    assert transfer.retry_count == 1
    assert transfer.stripe_transfer_id is None
