"""
月度结算应用服务

按 ACC 汇总当月已完成交易的分账记录，生成结算单；ACC 申请付款，平台线下付款后标记已支付。
"""
from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from core.logging_config import get_logger
from domain.common.exceptions import ForbiddenException, SettlementNotFoundException
from domain.common.party import Actor, PartyRef
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.ledger.entity import CommissionLedger, MonthlySettlement, MonthlySettlementStatus
from domain.ledger.service import month_bounds, previous_month


logger = get_logger(__name__)


class SettlementService:
    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def generate_monthly_settlements(self, settlement_month: Optional[str] = None) -> List[MonthlySettlement]:
        """
        生成（或追加）指定月份的结算单，默认上个月

        已提交付款申请的结算单不再追加，对应分账记录留待人工处理。
        """
        settlement_month = settlement_month or previous_month(datetime.now(timezone.utc))
        start, end = month_bounds(settlement_month)

        results: List[MonthlySettlement] = []
        async with self._uow_factory() as uow:
            by_acc: Dict[int, List[CommissionLedger]] = defaultdict(list)
            for entry in await uow.ledger_repository.list_unsettled_between(start, end):
                by_acc[entry.acc_id].append(entry)

            for acc_id, entries in sorted(by_acc.items()):
                settlement = await uow.settlement_repository.get_for_acc_month(acc_id, settlement_month)
                if settlement is None:
                    settlement = MonthlySettlement(id=None, settlement_month=settlement_month, acc_id=acc_id)
                elif settlement.status != MonthlySettlementStatus.PENDING:
                    logger.warning(
                        "settlement_closed_entries_left",
                        acc_id=acc_id,
                        settlement_month=settlement_month,
                        status=settlement.status.value,
                        entries=len(entries),
                    )
                    continue
                for entry in entries:
                    settlement.add_entry(entry)
                settlement = await uow.settlement_repository.save(settlement)
                await uow.ledger_repository.assign_settlement([e.id for e in entries], settlement.id)
                results.append(settlement)

        logger.info(
            "monthly_settlements_generated",
            settlement_month=settlement_month,
            settlements=len(results),
            entries=sum(s.entry_count for s in results),
        )
        return results

    async def list_settlements(self, settlement_month: str, actor: Actor) -> List[MonthlySettlement]:
        async with self._uow_factory(readonly=True) as uow:
            settlements = await uow.settlement_repository.list_by_month(settlement_month)
        if actor.is_group_admin:
            return settlements
        return [s for s in settlements if actor.acts_for(PartyRef.acc(s.acc_id))]

    async def request_payment(self, settlement_id: int, actor: Actor) -> MonthlySettlement:
        async with self._uow_factory() as uow:
            settlement = await uow.settlement_repository.get_by_id(settlement_id, for_update=True)
            if settlement is None:
                raise SettlementNotFoundException(settlement_id)
            if not actor.acts_for(PartyRef.acc(settlement.acc_id)):
                raise ForbiddenException("Only the settled ACC or a group admin can request payment")
            settlement.request_payment()
            settlement = await uow.settlement_repository.save(settlement)
        logger.info("settlement_payment_requested", settlement_id=settlement_id, acc_id=settlement.acc_id)
        return settlement

    async def mark_settlement_paid(
        self,
        settlement_id: int,
        payment_method: str,
        payment_reference: Optional[str],
        actor: Actor,
    ) -> MonthlySettlement:
        if not actor.is_group_admin:
            raise ForbiddenException("Only group admins can mark settlements paid")
        async with self._uow_factory() as uow:
            settlement = await uow.settlement_repository.get_by_id(settlement_id, for_update=True)
            if settlement is None:
                raise SettlementNotFoundException(settlement_id)
            settlement.mark_paid(payment_method, payment_reference)
            settlement = await uow.settlement_repository.save(settlement)
            settled = await uow.ledger_repository.mark_settled(settlement_id, settlement.payment_date.date())
        logger.info(
            "settlement_paid",
            settlement_id=settlement_id,
            acc_id=settlement.acc_id,
            payment_method=payment_method,
            entries_settled=settled,
        )
        return settlement
