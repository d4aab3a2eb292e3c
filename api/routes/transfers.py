"""ACC 转账管理路由（平台管理员）"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import get_group_admin, get_transfer_manager
from application.dto import TransferDTO
from application.services.transfer_service import TransferRetryManager
from core.response import Response as ApiResponse, success_response
from domain.common.party import Actor

router = APIRouter(
    prefix="/transfers",
    tags=["转账管理"],
)


@router.get("/{transfer_id}", summary="转账详情", response_model=ApiResponse[TransferDTO])
async def get_transfer(
    transfer_id: int,
    actor: Actor = Depends(get_group_admin),
    manager: TransferRetryManager = Depends(get_transfer_manager),
):
    transfer = await manager.get(transfer_id)
    return success_response(data=TransferDTO.from_entity(transfer))


@router.post("/{transfer_id}/retry", summary="手动重试失败的转账", response_model=ApiResponse[TransferDTO])
async def retry_transfer(
    transfer_id: int,
    actor: Actor = Depends(get_group_admin),
    manager: TransferRetryManager = Depends(get_transfer_manager),
):
    """仅 failed 且未达到重试上限的转账可以重试"""
    transfer = await manager.retry(transfer_id, actor)
    return success_response(data=TransferDTO.from_entity(transfer))
