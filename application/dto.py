"""
数据传输对象（DTO）- 应用层与表现层之间的数据传输
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_serializer, ConfigDict

from domain.code_batch.entity import CertificateCode, CodeBatch, PaymentMethod
from domain.ledger.entity import MonthlySettlement
from domain.pricing.entity import CoursePricing
from domain.tenant.entity import Acc, Course, TrainingCenter
from domain.transfer.entity import Transfer


class DTOBase(BaseModel):
    """Base DTO: unify datetime serialization to UTC-Z and Decimal to string."""

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                ts = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
                s = ts.astimezone(timezone.utc).isoformat()
                return s.replace("+00:00", "Z")
            if isinstance(value, Decimal):
                return str(value)
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


# --- 采购请求 ---------------------------------------------------------------


class PurchaseQuoteDTO(DTOBase):
    """询价 / 创建支付意图请求"""
    acc_id: int = Field(..., gt=0)
    course_id: int = Field(..., gt=0)
    quantity: int = Field(..., ge=1, description="购买数量")
    discount_code: Optional[str] = Field(None, max_length=50)

    @field_validator("discount_code")
    def normalize_discount_code(cls, v):
        if v is None:
            return None
        v = v.strip().upper()
        return v or None


class PurchaseRequestDTO(PurchaseQuoteDTO):
    """提交采购（刷卡确认或人工付款）"""
    payment_method: PaymentMethod
    payment_intent_id: Optional[str] = Field(None, max_length=200)
    payment_amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2, description="人工付款申报金额")


@dataclass
class ReceiptUpload:
    """人工付款凭证（表现层读取上传文件后传入）"""
    data: bytes
    filename: str
    content_type: Optional[str]


@dataclass
class PurchaseValidation:
    """采购前置校验通过后的上下文"""
    acc: Acc
    training_center: TrainingCenter
    course: Course
    pricing: CoursePricing


class PriceCalculation(DTOBase):
    unit_price: Decimal
    quantity: int
    total_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    currency: str
    commission_amount: Decimal
    provider_amount: Decimal
    discount_code_id: Optional[int] = None
    discount_code: Optional[str] = None
    discount_percentage: Optional[Decimal] = None


# --- 采购结果 ---------------------------------------------------------------


class PaymentIntentResultDTO(DTOBase):
    client_secret: Optional[str]
    payment_intent_id: str
    amount: Decimal
    currency: str
    commission_amount: Decimal
    provider_amount: Decimal
    payment_type: str


class PurchaseResultDTO(DTOBase):
    batch_id: int
    payment_method: str
    payment_status: str
    quantity: int
    total_amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal
    currency: str
    transaction_id: Optional[int] = None
    codes: list[str] = Field(default_factory=list)

    @classmethod
    def from_batch(cls, batch: CodeBatch, codes: Optional[list[str]] = None) -> "PurchaseResultDTO":
        return cls(
            batch_id=batch.id,
            payment_method=batch.payment_method.value,
            payment_status=batch.payment_status.value,
            quantity=batch.quantity,
            total_amount=batch.total_amount,
            discount_amount=batch.discount_amount,
            final_amount=batch.final_amount,
            currency=batch.currency,
            transaction_id=batch.transaction_id,
            codes=codes or [],
        )


# --- 审核 -------------------------------------------------------------------


class ApproveManualPaymentDTO(DTOBase):
    claimed_amount: Decimal = Field(..., ge=0, decimal_places=2)


class RejectManualPaymentDTO(DTOBase):
    reason: str = Field(..., min_length=1, max_length=1000)


class ApprovalResultDTO(DTOBase):
    batch_id: int
    payment_status: str
    codes_count: int = 0
    transaction_id: Optional[int] = None
    verified_by: Optional[int] = None
    verified_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None


# --- 转账 / 结算 / 退款 -----------------------------------------------------


class TransferDTO(DTOBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    transaction_id: int
    payee: str
    status: str
    gross_amount: Decimal
    commission_amount: Decimal
    net_amount: Decimal
    currency: str
    retry_count: int
    max_retries: int
    can_retry: bool
    stripe_transfer_id: Optional[str] = None
    error_message: Optional[str] = None
    next_retry_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, transfer: Transfer) -> "TransferDTO":
        return cls(
            id=transfer.id,
            transaction_id=transfer.transaction_id,
            payee=str(transfer.payee),
            status=transfer.status.value,
            gross_amount=transfer.gross_amount,
            commission_amount=transfer.commission_amount,
            net_amount=transfer.net_amount,
            currency=transfer.currency,
            retry_count=transfer.retry_count,
            max_retries=transfer.max_retries,
            can_retry=transfer.can_retry(),
            stripe_transfer_id=transfer.stripe_transfer_id,
            error_message=transfer.error_message,
            next_retry_at=transfer.next_retry_at,
            completed_at=transfer.completed_at,
        )


class MonthlySettlementDTO(DTOBase):
    id: int
    settlement_month: str
    acc_id: int
    total_revenue: Decimal
    group_commission_amount: Decimal
    acc_amount: Decimal
    entry_count: int
    status: str
    request_date: Optional[datetime] = None
    payment_date: Optional[datetime] = None
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None

    @classmethod
    def from_entity(cls, settlement: MonthlySettlement) -> "MonthlySettlementDTO":
        return cls(
            id=settlement.id,
            settlement_month=settlement.settlement_month,
            acc_id=settlement.acc_id,
            total_revenue=settlement.total_revenue,
            group_commission_amount=settlement.group_commission_amount,
            acc_amount=settlement.acc_amount,
            entry_count=settlement.entry_count,
            status=settlement.status.value,
            request_date=settlement.request_date,
            payment_date=settlement.payment_date,
            payment_method=settlement.payment_method,
            payment_reference=settlement.payment_reference,
        )


class MarkSettlementPaidDTO(DTOBase):
    payment_method: str = Field(..., min_length=1, max_length=50)
    payment_reference: Optional[str] = Field(None, max_length=200)


class RefundTransactionDTO(DTOBase):
    amount: Optional[Decimal] = Field(None, gt=0, description="为空表示全额退款")
    reason: Optional[str] = Field(None, max_length=500)


class ConsumeCodeDTO(DTOBase):
    certificate_id: int = Field(..., gt=0)


class CertificateCodeDTO(DTOBase):
    id: int
    code: str
    batch_id: int
    course_id: int
    status: str
    purchased_price: Decimal
    discount_applied: bool
    purchased_at: Optional[datetime] = None
    used_at: Optional[datetime] = None
    used_for_certificate_id: Optional[int] = None

    @classmethod
    def from_entity(cls, code: CertificateCode) -> "CertificateCodeDTO":
        return cls(
            id=code.id,
            code=code.code,
            batch_id=code.batch_id,
            course_id=code.course_id,
            status=code.status.value,
            purchased_price=code.purchased_price,
            discount_applied=code.discount_applied,
            purchased_at=code.purchased_at,
            used_at=code.used_at,
            used_for_certificate_id=code.used_for_certificate_id,
        )
