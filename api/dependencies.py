"""
API依赖项 - 认证与应用服务注入
"""
from typing import Optional

import jwt
import structlog
from fastapi import Depends, Query
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from application.services.certificate_code_service import CertificateCodeService
from application.services.code_purchase_service import CodeBatchPurchaseOrchestrator
from application.services.manual_payment_service import ManualPaymentApprovalWorkflow
from application.services.payment_event_service import PaymentEventHandler
from application.services.payment_service import PaymentService
from application.services.settlement_service import SettlementService
from application.services.transfer_service import TransferRetryManager
from core.config import settings
from core.exceptions import TokenExpiredException, UnauthorizedException
from core.logging_config import get_logger
from domain.common.exceptions import DomainValidationException, ForbiddenException
from domain.common.party import Actor, PartyRef, PartyType
from infrastructure import bootstrap


logger = get_logger(__name__)

# 令牌由身份服务签发，这里只做校验
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token issued by the identity service",
    auto_error=False,
)


async def get_token(
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> str:
    if bearer_token and bearer_token.credentials:
        return bearer_token.credentials
    raise UnauthorizedException("未提供认证凭据")


def decode_actor(token: str) -> Actor:
    """
    访问令牌 → Actor

    需要的声明：sub（用户ID）、party_type（acc/training_center/group）、party_id（group 可省略）
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise TokenExpiredException()
    except jwt.PyJWTError as e:
        logger.warning("invalid_access_token", error=str(e))
        raise UnauthorizedException("无效的认证凭据")

    if payload.get("type", "access") != "access":
        raise UnauthorizedException("令牌类型错误")
    try:
        user_id = int(payload["sub"])
        party_type = payload["party_type"]
        party = (
            PartyRef.group()
            if party_type == PartyType.GROUP.value
            else PartyRef.parse(party_type, int(payload["party_id"]))
        )
    except (KeyError, TypeError, ValueError, DomainValidationException):
        raise UnauthorizedException("令牌缺少身份声明")
    return Actor(user_id=user_id, party=party, name=payload.get("name"))


async def get_current_actor(token: str = Depends(get_token)) -> Actor:
    actor = decode_actor(token)
    structlog.contextvars.bind_contextvars(user_id=actor.user_id, party=str(actor.party))
    return actor


async def get_group_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_group_admin:
        raise ForbiddenException("需要平台管理员权限")
    return actor


async def get_training_center_id(
    actor: Actor = Depends(get_current_actor),
    training_center_id: Optional[int] = Query(None, gt=0, description="平台管理员代培训中心操作时指定"),
) -> int:
    """培训中心用户取自身ID；平台管理员必须显式指定"""
    if actor.party.party_type == PartyType.TRAINING_CENTER:
        return actor.party.party_id
    if actor.is_group_admin and training_center_id:
        return training_center_id
    raise ForbiddenException("只有培训中心可以采购兑换码")


# --- 应用服务 ---------------------------------------------------------------


async def get_payment_service() -> PaymentService:
    return bootstrap.build_payment_service()


async def get_purchase_orchestrator(
    payment_service: PaymentService = Depends(get_payment_service),
) -> CodeBatchPurchaseOrchestrator:
    return bootstrap.build_purchase_orchestrator(payment_service)


async def get_manual_payment_workflow() -> ManualPaymentApprovalWorkflow:
    return bootstrap.build_manual_payment_workflow()


async def get_payment_event_handler(
    payment_service: PaymentService = Depends(get_payment_service),
) -> PaymentEventHandler:
    return bootstrap.build_payment_event_handler(payment_service)


async def get_transfer_manager(
    payment_service: PaymentService = Depends(get_payment_service),
) -> TransferRetryManager:
    return bootstrap.build_transfer_manager(payment_service)


async def get_settlement_service() -> SettlementService:
    return bootstrap.build_settlement_service()


async def get_certificate_code_service() -> CertificateCodeService:
    return bootstrap.build_certificate_code_service()
