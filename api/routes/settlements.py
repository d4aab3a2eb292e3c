"""月度结算路由"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_current_actor, get_group_admin, get_settlement_service
from application.dto import MarkSettlementPaidDTO, MonthlySettlementDTO
from application.services.settlement_service import SettlementService
from core.response import Response as ApiResponse, success_response
from domain.common.party import Actor

router = APIRouter(
    prefix="/settlements",
    tags=["月度结算"],
)

MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


@router.post("/generate", summary="生成月度结算单", response_model=ApiResponse[list[MonthlySettlementDTO]])
async def generate(
    month: Optional[str] = Query(None, pattern=MONTH_PATTERN, description="YYYY-MM，默认上个月"),
    actor: Actor = Depends(get_group_admin),
    service: SettlementService = Depends(get_settlement_service),
):
    settlements = await service.generate_monthly_settlements(month)
    return success_response(data=[MonthlySettlementDTO.from_entity(s) for s in settlements])


@router.get("", summary="结算单列表", response_model=ApiResponse[list[MonthlySettlementDTO]])
async def list_settlements(
    month: str = Query(..., pattern=MONTH_PATTERN),
    actor: Actor = Depends(get_current_actor),
    service: SettlementService = Depends(get_settlement_service),
):
    settlements = await service.list_settlements(month, actor)
    return success_response(data=[MonthlySettlementDTO.from_entity(s) for s in settlements])


@router.post("/{settlement_id}/request-payment", summary="ACC 申请付款", response_model=ApiResponse[MonthlySettlementDTO])
async def request_payment(
    settlement_id: int,
    actor: Actor = Depends(get_current_actor),
    service: SettlementService = Depends(get_settlement_service),
):
    settlement = await service.request_payment(settlement_id, actor)
    return success_response(data=MonthlySettlementDTO.from_entity(settlement))


@router.post("/{settlement_id}/mark-paid", summary="标记已付款", response_model=ApiResponse[MonthlySettlementDTO])
async def mark_paid(
    settlement_id: int,
    payload: MarkSettlementPaidDTO,
    actor: Actor = Depends(get_group_admin),
    service: SettlementService = Depends(get_settlement_service),
):
    settlement = await service.mark_settlement_paid(
        settlement_id, payload.payment_method, payload.payment_reference, actor
    )
    return success_response(data=MonthlySettlementDTO.from_entity(settlement))
