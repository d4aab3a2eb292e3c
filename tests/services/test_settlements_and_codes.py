from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from application.services.certificate_code_service import CertificateCodeService
from application.services.discount_service import DiscountService
from domain.code_batch.entity import CodeStatus
from domain.common.exceptions import (
    CodeNotAvailableException,
    DomainValidationException,
    ForbiddenException,
    SettlementNotFoundException,
)
from domain.common.party import Actor, PartyRef
from domain.discount.entity import DiscountStatus
from domain.ledger.entity import MonthlySettlementStatus, SettlementStatus


def _this_month() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m")


@pytest.mark.asyncio
async def test_monthly_settlement_lifecycle(card_purchase, settlement_service, uow_factory, acc_actor, admin):
    first = await card_purchase(quantity=1)
    await card_purchase(quantity=2)
    month = _this_month()

    settlements = await settlement_service.generate_monthly_settlements(month)
    assert len(settlements) == 1
    s = settlements[0]
    assert s.acc_id == 1 and s.entry_count == 2
    assert s.total_revenue == Decimal("300.00")
    assert s.group_commission_amount == Decimal("30.00")
    assert s.acc_amount == Decimal("270.00")

    # entries are assigned once
    assert await settlement_service.generate_monthly_settlements(month) == []
    assert [x.id for x in await settlement_service.list_settlements(month, acc_actor)] == [s.id]
    assert await settlement_service.list_settlements(month, Actor(user_id=503, party=PartyRef.acc(3))) == []

    with pytest.raises(ForbiddenException):
        await settlement_service.request_payment(s.id, Actor(user_id=503, party=PartyRef.acc(3)))
    requested = await settlement_service.request_payment(s.id, acc_actor)
    assert requested.status == MonthlySettlementStatus.REQUESTED

    with pytest.raises(ForbiddenException):
        await settlement_service.mark_settlement_paid(s.id, "bank_transfer", "WIRE-1", acc_actor)
    paid = await settlement_service.mark_settlement_paid(s.id, "bank_transfer", "WIRE-1", admin)
    assert paid.status == MonthlySettlementStatus.PAID
    assert paid.payment_reference == "WIRE-1"

    async with uow_factory(readonly=True) as uow:
        entry = await uow.ledger_repository.get_by_transaction(first.transaction_id)
    assert entry.settlement_status == SettlementStatus.SETTLED
    assert entry.monthly_settlement_id == s.id


@pytest.mark.asyncio
async def test_settlement_month_must_be_valid(settlement_service, admin):
    assert await settlement_service.generate_monthly_settlements("2001-01") == []
    with pytest.raises(DomainValidationException):
        await settlement_service.generate_monthly_settlements("January")
    with pytest.raises(SettlementNotFoundException):
        await settlement_service.request_payment(404, admin)


@pytest.mark.asyncio
async def test_code_is_consumed_once(card_purchase, uow_factory, tc_actor):
    purchase = await card_purchase(quantity=2)
    service = CertificateCodeService(uow_factory)
    codes = await service.list_batch_codes(purchase.batch_id, tc_actor)
    code = codes[0]

    used = await service.consume_code(1, code.id, certificate_id=77)
    assert used.status == CodeStatus.USED
    assert used.used_for_certificate_id == 77 and used.used_at is not None

    with pytest.raises(CodeNotAvailableException):
        await service.consume_code(1, code.id, certificate_id=78)
    with pytest.raises(CodeNotAvailableException):
        await service.consume_code(2, codes[1].id, certificate_id=79)
    with pytest.raises(ForbiddenException):
        await service.list_batch_codes(purchase.batch_id, Actor(user_id=602, party=PartyRef.training_center(2)))


@pytest.mark.asyncio
async def test_discount_sweep_expires_and_depletes(uow_factory, card_purchase):
    await card_purchase(quantity=1, discount_code="LIMITED10")
    async with uow_factory() as uow:
        limited = await uow.discount_repository.get_by_code(1, "LIMITED10")
        # simulate a code left active after its last slot was taken
        await uow.discount_repository.set_status(limited.id, DiscountStatus.ACTIVE)

    changed = await DiscountService(uow_factory).sweep_statuses(today=date(2026, 10, 19))
    assert changed == 2

    async with uow_factory(readonly=True) as uow:
        old = await uow.discount_repository.get_by_code(1, "OLD")
        limited = await uow.discount_repository.get_by_code(1, "LIMITED10")
        save = await uow.discount_repository.get_by_code(1, "SAVE20")
    assert old.status == DiscountStatus.EXPIRED
    assert limited.status == DiscountStatus.DEPLETED
    assert save.status == DiscountStatus.ACTIVE
