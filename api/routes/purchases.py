"""兑换码采购相关路由（培训中心）"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from api.dependencies import (
    get_certificate_code_service,
    get_current_actor,
    get_purchase_orchestrator,
    get_training_center_id,
)
from application.dto import (
    CertificateCodeDTO,
    ConsumeCodeDTO,
    PaymentIntentResultDTO,
    PriceCalculation,
    PurchaseQuoteDTO,
    PurchaseRequestDTO,
    PurchaseResultDTO,
    ReceiptUpload,
)
from application.services.certificate_code_service import CertificateCodeService
from application.services.code_purchase_service import CodeBatchPurchaseOrchestrator
from core.response import Response as ApiResponse, success_response
from domain.code_batch.entity import PaymentMethod
from domain.common.party import Actor

router = APIRouter(
    prefix="/code-purchases",
    tags=["兑换码采购"],
)


@router.post("/quote", summary="采购询价", response_model=ApiResponse[PriceCalculation])
async def quote(
    payload: PurchaseQuoteDTO,
    training_center_id: int = Depends(get_training_center_id),
    service: CodeBatchPurchaseOrchestrator = Depends(get_purchase_orchestrator),
):
    _, price = await service.quote(training_center_id, payload)
    return success_response(data=price)


@router.post("/payment-intent", summary="创建刷卡支付意图", response_model=ApiResponse[PaymentIntentResultDTO])
async def create_payment_intent(
    payload: PurchaseQuoteDTO,
    actor: Actor = Depends(get_current_actor),
    training_center_id: int = Depends(get_training_center_id),
    service: CodeBatchPurchaseOrchestrator = Depends(get_purchase_orchestrator),
):
    validation, price = await service.quote(training_center_id, payload)
    result = await service.create_payment_intent(validation, price, actor)
    return success_response(data=result, message="Payment intent created")


@router.post("", summary="确认刷卡付款并生成兑换码", response_model=ApiResponse[PurchaseResultDTO])
async def purchase_with_card(
    payload: PurchaseRequestDTO,
    actor: Actor = Depends(get_current_actor),
    training_center_id: int = Depends(get_training_center_id),
    service: CodeBatchPurchaseOrchestrator = Depends(get_purchase_orchestrator),
):
    """
    - **payment_method**: 必须为 credit_card；人工付款请使用 /manual
    - **payment_intent_id**: 客户端完成支付后的支付意图ID，服务端会向渠道重新核验
    """
    payload = payload.model_copy(update={"payment_method": PaymentMethod.CREDIT_CARD})
    result = await service.purchase(actor, training_center_id, payload)
    return success_response(data=result, message="Codes generated")


@router.post("/manual", summary="提交人工付款（上传凭证）", response_model=ApiResponse[PurchaseResultDTO])
async def purchase_with_manual_payment(
    acc_id: int = Form(..., gt=0),
    course_id: int = Form(..., gt=0),
    quantity: int = Form(..., ge=1),
    payment_amount: Decimal = Form(..., ge=0),
    discount_code: Optional[str] = Form(None),
    payment_receipt: UploadFile = File(..., description="付款凭证（PDF/JPG/PNG）"),
    actor: Actor = Depends(get_current_actor),
    training_center_id: int = Depends(get_training_center_id),
    service: CodeBatchPurchaseOrchestrator = Depends(get_purchase_orchestrator),
):
    payload = PurchaseRequestDTO(
        acc_id=acc_id,
        course_id=course_id,
        quantity=quantity,
        discount_code=discount_code,
        payment_method=PaymentMethod.MANUAL_PAYMENT,
        payment_amount=payment_amount,
    )
    receipt = ReceiptUpload(
        data=await payment_receipt.read(),
        filename=payment_receipt.filename or "receipt",
        content_type=payment_receipt.content_type,
    )
    result = await service.purchase(actor, training_center_id, payload, receipt=receipt)
    return success_response(data=result, message="Manual payment submitted for review")


@router.get("/batches/{batch_id}/codes", summary="批次兑换码", response_model=ApiResponse[list[CertificateCodeDTO]])
async def list_batch_codes(
    batch_id: int,
    actor: Actor = Depends(get_current_actor),
    service: CertificateCodeService = Depends(get_certificate_code_service),
):
    codes = await service.list_batch_codes(batch_id, actor)
    return success_response(data=[CertificateCodeDTO.from_entity(c) for c in codes])


@router.post("/codes/{code_id}/consume", summary="签发证书时使用兑换码", response_model=ApiResponse[CertificateCodeDTO])
async def consume_code(
    code_id: int,
    payload: ConsumeCodeDTO,
    training_center_id: int = Depends(get_training_center_id),
    service: CertificateCodeService = Depends(get_certificate_code_service),
):
    code = await service.consume_code(training_center_id, code_id, payload.certificate_id)
    return success_response(data=CertificateCodeDTO.from_entity(code))
