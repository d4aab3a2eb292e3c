"""
佣金分账领域服务
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from .entity import Transaction, CommissionLedger
from domain.common.exceptions import DomainValidationException
from domain.common.money import to_money, percentage_of, HUNDRED


@dataclass(frozen=True)
class CommissionSplit:
    group_amount: Decimal
    acc_amount: Decimal
    group_percentage: Decimal
    acc_percentage: Decimal


class CommissionSettlementEngine:
    """
    平台（Group）与 ACC 的佣金分账

    刷卡完成与人工审核两条路径都调用同一个 split，保证金额口径一致。
    """

    @staticmethod
    def split(amount: Decimal, acc_commission_percentage: Decimal) -> CommissionSplit:
        """
        group_amount = round(amount * pct / 100, 2)；acc_amount = amount - group_amount

        ACC 部分用减法得到，保证两者之和严格等于交易金额。
        """
        pct = Decimal(acc_commission_percentage)
        if not Decimal("0") <= pct <= HUNDRED:
            raise DomainValidationException(f"佣金比例必须在0到100之间: {pct}", field="commission_percentage")
        amount = to_money(amount)
        group_amount = percentage_of(amount, pct)
        return CommissionSplit(
            group_amount=group_amount,
            acc_amount=amount - group_amount,
            group_percentage=pct,
            acc_percentage=HUNDRED - pct,
        )

    def build_ledger_entry(
        self,
        transaction: Transaction,
        acc_id: int,
        acc_commission_percentage: Decimal,
        training_center_id: Optional[int] = None,
    ) -> CommissionLedger:
        if transaction.id is None:
            raise DomainValidationException("交易尚未持久化", field="transaction_id")
        parts = self.split(transaction.amount, acc_commission_percentage)
        return CommissionLedger(
            id=None,
            transaction_id=transaction.id,
            acc_id=acc_id,
            training_center_id=training_center_id,
            group_commission_amount=parts.group_amount,
            group_commission_percentage=parts.group_percentage,
            acc_commission_amount=parts.acc_amount,
            acc_commission_percentage=parts.acc_percentage,
        )


def month_bounds(settlement_month: str) -> tuple[datetime, datetime]:
    """YYYY-MM → [当月1日0点, 次月1日0点)，UTC"""
    try:
        year, month = (int(p) for p in settlement_month.split("-"))
        start = datetime(year, month, 1, tzinfo=timezone.utc)
    except ValueError:
        raise DomainValidationException(
            f"结算月份格式应为 YYYY-MM: {settlement_month}",
            field="settlement_month",
        )
    end = datetime(year + 1, 1, 1, tzinfo=timezone.utc) if month == 12 else datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return start, end


def previous_month(now: datetime) -> str:
    year, month = now.year, now.month - 1
    if month == 0:
        year, month = year - 1, 12
    return f"{year:04d}-{month:02d}"
