"""
转账实体 - 平台向收款方关联账户的出款
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException
from domain.common.money import to_money
from domain.common.party import PartyRef


class TransferStatus(str, Enum):
    PENDING = "pending"          # 待发起（或收款方尚未绑定账户）
    PROCESSING = "processing"    # 正在请求渠道
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"        # 已认领重试，即将进入 processing


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Transfer:
    """
    转账聚合根

    状态机：pending → processing → completed|failed；
    failed → retrying → processing（仅当 retry_count < max_retries）。
    每次失败 retry_count 加一，达到 max_retries 后 failed 为永久终态。

    业务规则：gross_amount = commission_amount + net_amount
    """

    id: Optional[int]
    transaction_id: int
    payee: PartyRef
    gross_amount: Decimal
    commission_amount: Decimal
    net_amount: Decimal
    currency: str
    status: TransferStatus = TransferStatus.PENDING
    stripe_account_id: Optional[str] = None
    stripe_transfer_id: Optional[str] = None
    retry_count: int = 0
    max_retries: int = 3
    error_message: Optional[str] = None
    next_retry_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.net_amount < 0 or self.commission_amount < 0:
            raise DomainValidationException("转账金额不能为负数", field="net_amount")
        if to_money(self.commission_amount + self.net_amount) != to_money(self.gross_amount):
            raise DomainValidationException(
                f"总额 {self.gross_amount} 必须等于佣金 {self.commission_amount} + 净额 {self.net_amount}",
                field="gross_amount",
            )
        if self.retry_count < 0 or self.retry_count > self.max_retries:
            raise DomainValidationException(
                f"重试次数 {self.retry_count} 超出上限 {self.max_retries}",
                field="retry_count",
            )
        self.currency = (self.currency or "").upper()
        for name in ("next_retry_at", "processed_at", "completed_at", "failed_at", "created_at", "updated_at"):
            setattr(self, name, _ensure_utc(getattr(self, name)))

    def can_retry(self) -> bool:
        return self.status == TransferStatus.FAILED and self.retry_count < self.max_retries

    @property
    def can_execute(self) -> bool:
        """首次发起：待处理且已绑定收款账户"""
        return self.status == TransferStatus.PENDING and bool(self.stripe_account_id)

    @property
    def idempotency_key(self) -> str:
        return f"transfer_{self.id}_{self.transaction_id}"

    def mark_retrying(self) -> None:
        if not self.can_retry():
            raise DomainValidationException(
                f"转账状态为 {self.status.value}（重试 {self.retry_count}/{self.max_retries}），无法重试",
                field="status",
            )
        self.status = TransferStatus.RETRYING
        self.next_retry_at = None
        self.updated_at = datetime.now(timezone.utc)

    def mark_processing(self) -> None:
        if self.status not in (TransferStatus.PENDING, TransferStatus.RETRYING):
            raise DomainValidationException(
                f"无法从状态 {self.status.value} 转换为 processing",
                field="status",
            )
        self.status = TransferStatus.PROCESSING
        self.processed_at = datetime.now(timezone.utc)
        self.updated_at = self.processed_at

    def mark_completed(self, stripe_transfer_id: str) -> None:
        if self.status != TransferStatus.PROCESSING:
            raise DomainValidationException(
                f"无法从状态 {self.status.value} 转换为 completed",
                field="status",
            )
        self.status = TransferStatus.COMPLETED
        self.stripe_transfer_id = stripe_transfer_id
        self.error_message = None
        self.next_retry_at = None
        self.completed_at = datetime.now(timezone.utc)
        self.updated_at = self.completed_at

    def mark_failed(self, error_message: str, next_retry_at: Optional[datetime] = None) -> None:
        if self.status != TransferStatus.PROCESSING:
            raise DomainValidationException(
                f"无法从状态 {self.status.value} 转换为 failed",
                field="status",
            )
        self.status = TransferStatus.FAILED
        self.retry_count += 1
        self.error_message = error_message
        self.failed_at = datetime.now(timezone.utc)
        self.updated_at = self.failed_at
        self.next_retry_at = next_retry_at if self.can_retry() else None
