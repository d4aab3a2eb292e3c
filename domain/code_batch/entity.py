"""
兑换码批次领域实体 - 批次聚合根与证书兑换码
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException
from domain.common.money import to_money


class PaymentMethod(str, Enum):
    CREDIT_CARD = "credit_card"
    MANUAL_PAYMENT = "manual_payment"


class BatchPaymentStatus(str, Enum):
    """批次付款状态"""
    PENDING = "pending"          # 待付款确认 / 待人工审核
    APPROVED = "approved"        # 人工付款审核通过
    REJECTED = "rejected"        # 人工付款被驳回（终态）
    COMPLETED = "completed"      # 刷卡付款已确认
    FAILED = "failed"


class CodeStatus(str, Enum):
    AVAILABLE = "available"
    USED = "used"
    EXPIRED = "expired"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class CodeBatch:
    """
    兑换码批次 - 一次批量购买订单

    业务规则：
    1. 数量与金额创建后不可变，final_amount = max(0, total_amount - discount_amount)
    2. 批次只会经历一次 pending → approved|rejected（人工）或 pending → completed（刷卡）
    3. 状态为 approved/completed 时，批次下恰好有 quantity 个兑换码；之前为 0 个
    """

    id: Optional[int]
    training_center_id: int
    acc_id: int
    course_id: int
    quantity: int
    unit_price: Decimal
    total_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    currency: str
    payment_method: PaymentMethod
    payment_status: BatchPaymentStatus = BatchPaymentStatus.PENDING
    transaction_id: Optional[int] = None
    discount_code_id: Optional[int] = None
    payment_intent_id: Optional[str] = None
    payment_receipt_url: Optional[str] = None
    payment_amount: Optional[Decimal] = None
    verified_by: Optional[int] = None
    verified_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.quantity < 1:
            raise DomainValidationException(f"购买数量必须大于0: {self.quantity}", field="quantity")
        for name in ("unit_price", "total_amount", "discount_amount", "final_amount"):
            if getattr(self, name) < 0:
                raise DomainValidationException(f"{name} 不能为负数", field=name)
        expected_final = max(to_money(self.total_amount - self.discount_amount), Decimal("0.00"))
        if to_money(self.final_amount) != expected_final:
            raise DomainValidationException(
                f"实付金额 {self.final_amount} 与 总额-折扣 {expected_final} 不一致",
                field="final_amount",
            )
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.verified_at = _ensure_utc(self.verified_at)

    @property
    def is_pending(self) -> bool:
        return self.payment_status == BatchPaymentStatus.PENDING

    @property
    def unit_purchase_price(self) -> Decimal:
        """折后单价，写入每个兑换码的 purchased_price"""
        return to_money(self.final_amount / self.quantity)

    def _ensure_pending(self, target: BatchPaymentStatus) -> None:
        if not self.is_pending:
            raise DomainValidationException(
                f"无法从状态 {self.payment_status.value} 转换为 {target.value}",
                field="payment_status",
            )

    def mark_completed(self, transaction_id: int) -> None:
        """刷卡付款确认"""
        if self.payment_method != PaymentMethod.CREDIT_CARD:
            raise DomainValidationException("只有刷卡批次可以直接完成", field="payment_method")
        self._ensure_pending(BatchPaymentStatus.COMPLETED)
        self.payment_status = BatchPaymentStatus.COMPLETED
        self.transaction_id = transaction_id
        self.updated_at = datetime.now(timezone.utc)

    def approve(self, verified_by: int) -> None:
        """人工付款审核通过"""
        self._ensure_pending(BatchPaymentStatus.APPROVED)
        self.payment_status = BatchPaymentStatus.APPROVED
        self.verified_by = verified_by
        self.verified_at = datetime.now(timezone.utc)
        self.updated_at = self.verified_at

    def reject(self, reason: str, verified_by: int) -> None:
        """人工付款驳回（终态）"""
        if not (reason or "").strip():
            raise DomainValidationException("驳回原因不能为空", field="rejection_reason")
        self._ensure_pending(BatchPaymentStatus.REJECTED)
        self.payment_status = BatchPaymentStatus.REJECTED
        self.rejection_reason = reason.strip()
        self.verified_by = verified_by
        self.verified_at = datetime.now(timezone.utc)
        self.updated_at = self.verified_at


@dataclass
class CertificateCode:
    """
    证书兑换码 - 一次性凭证

    业务规则：status=used 时必须记录 used_at 与 used_for_certificate_id；每个兑换码最多使用一次
    """

    id: Optional[int]
    code: str
    batch_id: int
    training_center_id: int
    acc_id: int
    course_id: int
    purchased_price: Decimal
    discount_applied: bool = False
    discount_code_id: Optional[int] = None
    status: CodeStatus = CodeStatus.AVAILABLE
    purchased_at: Optional[datetime] = None
    used_at: Optional[datetime] = None
    used_for_certificate_id: Optional[int] = None

    def __post_init__(self):
        if self.status == CodeStatus.USED and (self.used_at is None or self.used_for_certificate_id is None):
            raise DomainValidationException("已使用的兑换码必须记录使用时间与证书", field="status")
        self.purchased_at = _ensure_utc(self.purchased_at)
        self.used_at = _ensure_utc(self.used_at)

    def mark_used(self, certificate_id: int) -> None:
        if self.status != CodeStatus.AVAILABLE:
            raise DomainValidationException(
                f"兑换码状态为 {self.status.value}，无法使用",
                field="status",
            )
        self.status = CodeStatus.USED
        self.used_at = datetime.now(timezone.utc)
        self.used_for_certificate_id = certificate_id
