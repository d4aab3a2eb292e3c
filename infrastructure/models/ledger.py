"""
账务数据库模型：交易、佣金分账、月度结算
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, Date, DateTime, Text,
    Index, ForeignKey, UniqueConstraint
)
from datetime import datetime, timezone

from .base import Base


class TransactionModel(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    transaction_type = Column(String(30), nullable=False, index=True, comment="交易类型: code_purchase/subscription/...")

    # 付款方 / 收款方（PartyType + ID）
    payer_type = Column(String(30), nullable=False, comment="付款方类型")
    payer_id = Column(Integer, nullable=False, comment="付款方ID")
    payee_type = Column(String(30), nullable=False, comment="收款方类型")
    payee_id = Column(Integer, nullable=False, comment="收款方ID")

    amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="交易金额")
    currency = Column(String(3), nullable=False, default="USD", comment="货币代码")
    commission_amount = Column(Numeric(precision=15, scale=2), nullable=True, comment="平台佣金")
    provider_amount = Column(Numeric(precision=15, scale=2), nullable=True, comment="收款方所得")
    payment_method = Column(String(20), nullable=False, comment="付款方式")
    payment_type = Column(String(30), nullable=False, default="standard", comment="standard/destination_charge")
    payment_gateway_transaction_id = Column(
        String(200),
        unique=True,
        nullable=True,
        comment="支付渠道交易号（唯一，保证同一支付只处理一次）"
    )
    status = Column(String(20), nullable=False, default="pending", index=True, comment="状态: pending/completed/failed/refunded")
    reference_type = Column(String(30), nullable=True, comment="关联业务类型")
    reference_id = Column(Integer, nullable=True, comment="关联业务ID")
    description = Column(Text, nullable=True, comment="描述")
    failure_reason = Column(Text, nullable=True, comment="失败原因")
    completed_at = Column(DateTime(timezone=True), nullable=True, index=True, comment="完成时间")
    refunded_at = Column(DateTime(timezone=True), nullable=True, comment="退款时间")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    __table_args__ = (
        Index("ix_transactions_reference", "reference_type", "reference_id"),
        Index("ix_transactions_payee", "payee_type", "payee_id"),
    )

    def __repr__(self):
        return f"<TransactionModel(id={self.id}, amount={self.amount}, status='{self.status}')>"


class MonthlySettlementModel(Base):
    __tablename__ = "monthly_settlements"

    id = Column(Integer, primary_key=True, index=True)
    settlement_month = Column(String(7), nullable=False, comment="结算月份 YYYY-MM")
    acc_id = Column(Integer, ForeignKey("accs.id"), nullable=False, comment="ACC ID")
    total_revenue = Column(Numeric(precision=15, scale=2), nullable=False, default=0, comment="当月收入")
    group_commission_amount = Column(Numeric(precision=15, scale=2), nullable=False, default=0, comment="平台佣金")
    acc_amount = Column(Numeric(precision=15, scale=2), nullable=False, default=0, comment="ACC应得")
    entry_count = Column(Integer, nullable=False, default=0, comment="分账记录数")
    status = Column(String(20), nullable=False, default="pending", comment="状态: pending/requested/paid")
    request_date = Column(DateTime(timezone=True), nullable=True, comment="请款时间")
    payment_date = Column(DateTime(timezone=True), nullable=True, comment="付款时间")
    payment_method = Column(String(50), nullable=True, comment="付款方式")
    payment_reference = Column(String(200), nullable=True, comment="付款凭证号")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )

    __table_args__ = (
        UniqueConstraint("acc_id", "settlement_month", name="uq_monthly_settlements_acc_month"),
    )


class CommissionLedgerModel(Base):
    __tablename__ = "commission_ledgers"

    id = Column(Integer, primary_key=True, index=True)
    transaction_id = Column(
        Integer,
        ForeignKey("transactions.id"),
        unique=True,
        nullable=False,
        comment="交易ID（每笔交易一条）"
    )
    acc_id = Column(Integer, ForeignKey("accs.id"), nullable=False, index=True, comment="ACC ID")
    training_center_id = Column(Integer, nullable=True, comment="培训中心ID")
    group_commission_amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="平台佣金")
    group_commission_percentage = Column(Numeric(precision=5, scale=2), nullable=False, comment="平台佣金比例")
    acc_commission_amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="ACC所得")
    acc_commission_percentage = Column(Numeric(precision=5, scale=2), nullable=False, comment="ACC所得比例")
    settlement_status = Column(String(20), nullable=False, default="pending", index=True, comment="结算状态: pending/settled")
    settlement_date = Column(Date, nullable=True, comment="结算日期")
    monthly_settlement_id = Column(Integer, ForeignKey("monthly_settlements.id"), nullable=True, index=True, comment="所属月度结算单")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
