"""兑换码使用"""
from __future__ import annotations

from typing import Callable, List

from core.logging_config import get_logger
from domain.code_batch.entity import CertificateCode, CodeStatus
from domain.common.exceptions import BatchNotFoundException, CodeNotAvailableException, ForbiddenException
from domain.common.party import Actor, PartyRef
from domain.common.unit_of_work import AbstractUnitOfWork


logger = get_logger(__name__)


class CertificateCodeService:
    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def list_batch_codes(self, batch_id: int, actor: Actor) -> List[CertificateCode]:
        async with self._uow_factory(readonly=True) as uow:
            batch = await uow.batch_repository.get_by_id(batch_id)
            if batch is None:
                raise BatchNotFoundException(batch_id)
            if not (
                actor.acts_for(PartyRef.training_center(batch.training_center_id))
                or actor.acts_for(PartyRef.acc(batch.acc_id))
            ):
                raise ForbiddenException("Actor cannot view codes of this batch")
            return await uow.code_repository.list_by_batch(batch_id)

    async def consume_code(self, training_center_id: int, code_id: int, certificate_id: int) -> CertificateCode:
        """
        为签发的证书占用一个兑换码（available → used，仅一次）

        兑换码不存在、不属于该培训中心或已使用时抛出 CodeNotAvailableException。
        """
        async with self._uow_factory() as uow:
            code = await uow.code_repository.get_by_id(code_id)
            if code is None or code.training_center_id != training_center_id or code.status != CodeStatus.AVAILABLE:
                raise CodeNotAvailableException(code_id)
            code.mark_used(certificate_id)
            # 条件更新：并发占用同一兑换码时只有一个成功
            if not await uow.code_repository.mark_used(
                code_id,
                training_center_id,
                certificate_id,
                code.used_at,
            ):
                raise CodeNotAvailableException(code_id)
        logger.info(
            "certificate_code_consumed",
            code_id=code_id,
            training_center_id=training_center_id,
            certificate_id=certificate_id,
        )
        return code
