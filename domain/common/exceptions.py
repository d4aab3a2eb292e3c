"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。

异常按处理方式分为五类：
- DomainValidationException：输入形态错误，在任何副作用之前拒绝
- PolicyException：业务状态不允许（未授权、无定价、折扣无效、金额不符等）
- GatewayException：外部支付渠道失败，可能是暂时性的
- ConcurrencyException：资源已被其他操作处理，需与“不存在”区分
- 其他未捕获异常：由全局处理器记录并返回通用错误
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class PolicyException(BusinessException):
    """业务策略拒绝（调用方已认证，但当前业务状态不允许）"""

    def __init__(
        self,
        code: int,
        message: str,
        *,
        reason: str,
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.reason = reason
        merged = {"reason": reason}
        if details:
            merged.update(details)
        super().__init__(
            code=code,
            message=message,
            error_type="PolicyError",
            details=merged,
            field=field,
        )


class GatewayException(BusinessException):
    """外部支付渠道异常基类，基础设施层的渠道异常均继承自此类"""

    recoverable: bool = False


class ConcurrencyException(BusinessException):
    """并发冲突：目标已被其他操作处理"""

    def __init__(self, code: int, message: str, *, details: Optional[dict] = None) -> None:
        super().__init__(
            code=code,
            message=message,
            error_type="ConcurrencyError",
            details=details,
        )


class ForbiddenException(BusinessException):
    def __init__(self, message: str = "Operation not permitted for this actor"):
        super().__init__(
            code=BusinessCode.FORBIDDEN,
            message=message,
            error_type="Forbidden",
        )


# --- 采购校验 ---------------------------------------------------------------


class AccNotFoundException(PolicyException):
    def __init__(self, acc_id: int):
        super().__init__(
            BusinessCode.ACC_NOT_FOUND,
            "ACC not found",
            reason="acc_not_found",
            details={"acc_id": acc_id},
        )


class AccInactiveException(PolicyException):
    def __init__(self, acc_id: int, status: str):
        super().__init__(
            BusinessCode.ACC_INACTIVE,
            "ACC is not active",
            reason="acc_inactive",
            details={"acc_id": acc_id, "status": status},
        )


class NotAuthorizedForAccException(PolicyException):
    def __init__(self, training_center_id: int, acc_id: int):
        super().__init__(
            BusinessCode.NOT_AUTHORIZED,
            "Training center is not authorized by this ACC",
            reason="not_authorized",
            details={"training_center_id": training_center_id, "acc_id": acc_id},
        )


class CourseNotFoundException(PolicyException):
    def __init__(self, course_id: int, acc_id: int):
        super().__init__(
            BusinessCode.COURSE_NOT_FOUND,
            "Course not found for this ACC",
            reason="course_not_found",
            details={"course_id": course_id, "acc_id": acc_id},
        )


class PricingNotFoundException(PolicyException):
    def __init__(self, course_id: int, acc_id: int, *, details: Optional[dict] = None):
        merged = {"course_id": course_id, "acc_id": acc_id}
        if details:
            merged.update(details)
        super().__init__(
            BusinessCode.PRICING_NOT_FOUND,
            "No effective pricing for this course",
            reason="pricing_not_found",
            details=merged,
        )


class DiscountInvalidException(PolicyException):
    def __init__(self, code: str, discount_reason: str, message: Optional[str] = None):
        super().__init__(
            BusinessCode.DISCOUNT_INVALID,
            message or f"Discount code is not valid: {discount_reason}",
            reason="discount_invalid",
            details={"discount_code": code, "discount_reason": discount_reason},
            field="discount_code",
        )
        self.discount_reason = discount_reason


class AmountMismatchException(PolicyException):
    def __init__(self, expected: Decimal, provided: Decimal):
        super().__init__(
            BusinessCode.AMOUNT_MISMATCH,
            "Payment amount does not match the amount due",
            reason="amount_mismatch",
            details={
                "expected_amount": str(expected),
                "provided_amount": str(provided),
                "difference": str(abs(expected - provided)),
            },
            field="payment_amount",
        )
        self.expected_amount = expected
        self.provided_amount = provided


class ReceiptRequiredException(PolicyException):
    def __init__(self):
        super().__init__(
            BusinessCode.RECEIPT_REQUIRED,
            "Payment receipt is required for manual payment",
            reason="receipt_required",
            field="payment_receipt",
        )


# --- 批次与兑换码 -------------------------------------------------------------


class BatchNotFoundException(BusinessException):
    def __init__(self, batch_id: int):
        super().__init__(
            code=BusinessCode.BATCH_NOT_FOUND,
            message="Code batch not found",
            error_type="BatchNotFound",
            details={"batch_id": batch_id},
        )


class NotManualPaymentException(PolicyException):
    def __init__(self, batch_id: int, payment_method: str):
        super().__init__(
            BusinessCode.NOT_MANUAL_PAYMENT,
            "Batch was not paid by manual payment",
            reason="not_manual_payment",
            details={"batch_id": batch_id, "payment_method": payment_method},
        )


class BatchNotPendingException(ConcurrencyException):
    def __init__(self, batch_id: int, status: Optional[str] = None):
        super().__init__(
            BusinessCode.BATCH_NOT_PENDING,
            "Batch has already been processed",
            details={"batch_id": batch_id, "payment_status": status},
        )


class PurchaseAlreadyProcessedException(ConcurrencyException):
    def __init__(self, payment_intent_id: str):
        super().__init__(
            BusinessCode.PURCHASE_ALREADY_PROCESSED,
            "Payment has already been processed",
            details={"payment_intent_id": payment_intent_id},
        )


class CodeNotAvailableException(BusinessException):
    def __init__(self, code_id: int):
        super().__init__(
            code=BusinessCode.CODE_NOT_AVAILABLE,
            message="Certificate code is not available",
            error_type="CodeNotAvailable",
            details={"code_id": code_id},
        )


class CodeGenerationException(BusinessException):
    def __init__(self, attempts: int):
        super().__init__(
            code=BusinessCode.CODE_GENERATION_FAILED,
            message="Unable to generate a unique certificate code",
            error_type="CodeGenerationFailed",
            details={"attempts": attempts},
        )


# --- 交易与结算 ---------------------------------------------------------------


class TransactionNotFoundException(BusinessException):
    def __init__(self, identifier):
        super().__init__(
            code=BusinessCode.TRANSACTION_NOT_FOUND,
            message="Transaction not found",
            error_type="TransactionNotFound",
            details={"transaction": str(identifier)},
        )


class TransactionNotRefundableException(PolicyException):
    def __init__(self, transaction_id: int, status: str):
        super().__init__(
            BusinessCode.TRANSACTION_NOT_REFUNDABLE,
            "Transaction cannot be refunded",
            reason="not_refundable",
            details={"transaction_id": transaction_id, "status": status},
        )


class SettlementNotFoundException(BusinessException):
    def __init__(self, settlement_id: int):
        super().__init__(
            code=BusinessCode.SETTLEMENT_NOT_FOUND,
            message="Settlement not found",
            error_type="SettlementNotFound",
            details={"settlement_id": settlement_id},
        )


# --- 转账 -------------------------------------------------------------------


class TransferNotFoundException(BusinessException):
    def __init__(self, transfer_id: int):
        super().__init__(
            code=BusinessCode.TRANSFER_NOT_FOUND,
            message="Transfer not found",
            error_type="TransferNotFound",
            details={"transfer_id": transfer_id},
        )


class TransferNotRetryableException(PolicyException):
    def __init__(self, transfer_id: int, status: str, retry_count: int, max_retries: int):
        super().__init__(
            BusinessCode.TRANSFER_NOT_RETRYABLE,
            "Transfer cannot be retried",
            reason="transfer_not_retryable",
            details={
                "transfer_id": transfer_id,
                "status": status,
                "retry_count": retry_count,
                "max_retries": max_retries,
            },
        )


class TransferNotEligibleException(PolicyException):
    def __init__(self, transaction_id: int, why: str):
        super().__init__(
            BusinessCode.TRANSFER_NOT_ELIGIBLE,
            f"Transaction is not eligible for transfer: {why}",
            reason="transfer_not_eligible",
            details={"transaction_id": transaction_id, "why": why},
        )


class TransferInProgressException(ConcurrencyException):
    def __init__(self, transfer_id: int):
        super().__init__(
            BusinessCode.TRANSFER_IN_PROGRESS,
            "Transfer is already being processed",
            details={"transfer_id": transfer_id},
        )


# --- 支付渠道 ---------------------------------------------------------------


class PaymentGatewayException(GatewayException):
    """创建/查询支付意图失败（对调用方可重试）"""

    recoverable = True

    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.GATEWAY_ERROR,
            message=message,
            error_type="PaymentGatewayError",
            details={"reason": "payment_gateway_error", **(details or {})},
        )


class PaymentVerificationException(GatewayException):
    """支付意图未通过服务端校验（未成功、金额或元数据不符）"""

    def __init__(self, payment_intent_id: str, verification_reason: str, *, details: Optional[dict] = None):
        merged = {
            "reason": "payment_verification_failed",
            "verification_reason": verification_reason,
            "payment_intent_id": payment_intent_id,
        }
        if details:
            merged.update(details)
        super().__init__(
            code=PaymentCode.VERIFICATION_FAILED,
            message=f"Payment verification failed: {verification_reason}",
            error_type="PaymentVerificationFailed",
            details=merged,
        )
        self.verification_reason = verification_reason
