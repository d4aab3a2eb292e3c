"""
账务实体 - 交易、佣金分账记录、月度结算
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone, date
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException
from domain.common.money import to_money
from domain.common.party import PartyRef


class TransactionType(str, Enum):
    CODE_PURCHASE = "code_purchase"
    SUBSCRIPTION = "subscription"
    COMMISSION = "commission"
    SETTLEMENT = "settlement"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentType(str, Enum):
    """standard：平台收款后再转账；destination_charge：渠道直接分账到 ACC"""
    STANDARD = "standard"
    DESTINATION_CHARGE = "destination_charge"


class SettlementStatus(str, Enum):
    PENDING = "pending"
    SETTLED = "settled"


class MonthlySettlementStatus(str, Enum):
    PENDING = "pending"
    REQUESTED = "requested"
    PAID = "paid"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Transaction:
    """
    交易聚合根

    业务规则：
    1. 金额大于0
    2. 状态单向流转：pending → completed|failed，completed → refunded；不会回到 pending
    """

    id: Optional[int]
    transaction_type: TransactionType
    payer: PartyRef
    payee: PartyRef
    amount: Decimal
    currency: str
    payment_method: str
    status: TransactionStatus = TransactionStatus.PENDING
    payment_type: PaymentType = PaymentType.STANDARD
    payment_gateway_transaction_id: Optional[str] = None
    commission_amount: Optional[Decimal] = None
    provider_amount: Optional[Decimal] = None
    reference_type: Optional[str] = None
    reference_id: Optional[int] = None
    description: Optional[str] = None
    failure_reason: Optional[str] = None
    completed_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.amount <= 0:
            raise DomainValidationException(f"交易金额必须大于0: {self.amount}", field="amount")
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"无效的货币代码: {self.currency}", field="currency")
        self.currency = self.currency.upper()
        self.completed_at = _ensure_utc(self.completed_at)
        self.refunded_at = _ensure_utc(self.refunded_at)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    def mark_completed(self, gateway_transaction_id: Optional[str] = None) -> None:
        if self.status != TransactionStatus.PENDING:
            raise DomainValidationException(
                f"无法从状态 {self.status.value} 转换为 completed",
                field="status",
            )
        self.status = TransactionStatus.COMPLETED
        if gateway_transaction_id:
            self.payment_gateway_transaction_id = gateway_transaction_id
        self.completed_at = datetime.now(timezone.utc)
        self.updated_at = self.completed_at
        self.failure_reason = None

    def mark_failed(self, reason: Optional[str] = None) -> None:
        if self.status != TransactionStatus.PENDING:
            raise DomainValidationException(
                f"无法从状态 {self.status.value} 转换为 failed",
                field="status",
            )
        self.status = TransactionStatus.FAILED
        self.failure_reason = reason
        self.updated_at = datetime.now(timezone.utc)

    def mark_refunded(self) -> None:
        if self.status != TransactionStatus.COMPLETED:
            raise DomainValidationException(
                f"无法从状态 {self.status.value} 转换为 refunded",
                field="status",
            )
        self.status = TransactionStatus.REFUNDED
        self.refunded_at = datetime.now(timezone.utc)
        self.updated_at = self.refunded_at


@dataclass
class CommissionLedger:
    """
    佣金分账记录 - 每笔已完成的收入交易恰好一条

    业务规则：group_commission_amount + acc_commission_amount == 交易金额
    """

    id: Optional[int]
    transaction_id: int
    acc_id: int
    group_commission_amount: Decimal
    group_commission_percentage: Decimal
    acc_commission_amount: Decimal
    acc_commission_percentage: Decimal
    training_center_id: Optional[int] = None
    settlement_status: SettlementStatus = SettlementStatus.PENDING
    settlement_date: Optional[date] = None
    monthly_settlement_id: Optional[int] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.group_commission_amount < 0 or self.acc_commission_amount < 0:
            raise DomainValidationException("分账金额不能为负数", field="group_commission_amount")
        self.created_at = _ensure_utc(self.created_at)

    @property
    def total_amount(self) -> Decimal:
        return to_money(self.group_commission_amount + self.acc_commission_amount)


@dataclass
class MonthlySettlement:
    """ACC 月度结算单"""

    id: Optional[int]
    settlement_month: str  # YYYY-MM
    acc_id: int
    total_revenue: Decimal = field(default_factory=lambda: Decimal("0.00"))
    group_commission_amount: Decimal = field(default_factory=lambda: Decimal("0.00"))
    acc_amount: Decimal = field(default_factory=lambda: Decimal("0.00"))
    entry_count: int = 0
    status: MonthlySettlementStatus = MonthlySettlementStatus.PENDING
    request_date: Optional[datetime] = None
    payment_date: Optional[datetime] = None
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None

    def __post_init__(self):
        parts = (self.settlement_month or "").split("-")
        if len(parts) != 2 or len(parts[0]) != 4 or not all(p.isdigit() for p in parts) or not 1 <= int(parts[1]) <= 12:
            raise DomainValidationException(
                f"结算月份格式应为 YYYY-MM: {self.settlement_month}",
                field="settlement_month",
            )
        self.request_date = _ensure_utc(self.request_date)
        self.payment_date = _ensure_utc(self.payment_date)

    def add_entry(self, entry: CommissionLedger) -> None:
        if self.status != MonthlySettlementStatus.PENDING:
            raise DomainValidationException("结算单已提交，无法追加分账记录", field="status")
        self.total_revenue = to_money(self.total_revenue + entry.total_amount)
        self.group_commission_amount = to_money(self.group_commission_amount + entry.group_commission_amount)
        self.acc_amount = to_money(self.acc_amount + entry.acc_commission_amount)
        self.entry_count += 1

    def request_payment(self) -> None:
        if self.status != MonthlySettlementStatus.PENDING:
            raise DomainValidationException(
                f"无法从状态 {self.status.value} 转换为 requested",
                field="status",
            )
        self.status = MonthlySettlementStatus.REQUESTED
        self.request_date = datetime.now(timezone.utc)

    def mark_paid(self, payment_method: str, payment_reference: Optional[str] = None) -> None:
        if self.status == MonthlySettlementStatus.PAID:
            raise DomainValidationException("结算单已支付", field="status")
        self.status = MonthlySettlementStatus.PAID
        self.payment_method = payment_method
        self.payment_reference = payment_reference
        self.payment_date = datetime.now(timezone.utc)
