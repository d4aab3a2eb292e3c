"""
转账数据库模型
"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Text, Index, ForeignKey
from datetime import datetime, timezone

from .base import Base


class TransferModel(Base):
    __tablename__ = "transfers"

    id = Column(Integer, primary_key=True, index=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=False, index=True, comment="来源交易")
    user_type = Column(String(30), nullable=False, comment="收款方类型")
    user_id = Column(Integer, nullable=False, comment="收款方ID")
    stripe_account_id = Column(String(100), nullable=True, comment="收款方 Stripe Connect 账户")
    gross_amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="交易总额")
    commission_amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="平台佣金")
    net_amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="实际转账金额")
    currency = Column(String(3), nullable=False, default="USD", comment="货币代码")
    status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="状态: pending/processing/completed/failed/retrying"
    )
    stripe_transfer_id = Column(String(100), nullable=True, comment="Stripe 转账ID")
    retry_count = Column(Integer, nullable=False, default=0, comment="失败次数")
    max_retries = Column(Integer, nullable=False, default=3, comment="最大重试次数")
    error_message = Column(Text, nullable=True, comment="最近一次错误")
    next_retry_at = Column(DateTime(timezone=True), nullable=True, comment="下次重试时间")
    processed_at = Column(DateTime(timezone=True), nullable=True, comment="最近发起时间")
    completed_at = Column(DateTime(timezone=True), nullable=True, comment="完成时间")
    failed_at = Column(DateTime(timezone=True), nullable=True, comment="最近失败时间")
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
        Index("ix_transfers_retry_due", "status", "next_retry_at"),
    )

    def __repr__(self):
        return f"<TransferModel(id={self.id}, net_amount={self.net_amount}, status='{self.status}', retry_count={self.retry_count})>"
