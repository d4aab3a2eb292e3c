"""人工付款审核路由（ACC / 平台管理员）"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_current_actor, get_manual_payment_workflow
from application.dto import (
    ApprovalResultDTO,
    ApproveManualPaymentDTO,
    PurchaseResultDTO,
    RejectManualPaymentDTO,
)
from application.services.manual_payment_service import ManualPaymentApprovalWorkflow
from core.response import Response as ApiResponse, success_response
from domain.common.party import Actor

router = APIRouter(
    prefix="/manual-payments",
    tags=["人工付款审核"],
)


@router.get("/pending", summary="待审核批次", response_model=ApiResponse[list[PurchaseResultDTO]])
async def list_pending(
    acc_id: Optional[int] = Query(None, gt=0, description="平台管理员按 ACC 过滤"),
    actor: Actor = Depends(get_current_actor),
    workflow: ManualPaymentApprovalWorkflow = Depends(get_manual_payment_workflow),
):
    batches = await workflow.list_pending(actor, acc_id=acc_id)
    return success_response(data=[PurchaseResultDTO.from_batch(b) for b in batches])


@router.post("/{batch_id}/approve", summary="审核通过", response_model=ApiResponse[ApprovalResultDTO])
async def approve(
    batch_id: int,
    payload: ApproveManualPaymentDTO,
    actor: Actor = Depends(get_current_actor),
    workflow: ManualPaymentApprovalWorkflow = Depends(get_manual_payment_workflow),
):
    """**claimed_amount**: 审核人核对到账的金额，与批次实付金额误差需在 0.01 以内"""
    result = await workflow.approve(batch_id, payload.claimed_amount, actor)
    return success_response(data=result, message="Manual payment approved")


@router.post("/{batch_id}/reject", summary="驳回", response_model=ApiResponse[ApprovalResultDTO])
async def reject(
    batch_id: int,
    payload: RejectManualPaymentDTO,
    actor: Actor = Depends(get_current_actor),
    workflow: ManualPaymentApprovalWorkflow = Depends(get_manual_payment_workflow),
):
    result = await workflow.reject(batch_id, payload.reason, actor)
    return success_response(data=result, message="Manual payment rejected")
