"""折扣码状态巡检"""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Callable, Optional

from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.discount.service import DiscountEngine


logger = get_logger(__name__)


class DiscountService:
    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def sweep_statuses(self, today: Optional[date] = None) -> int:
        """过期的 active 折扣码置为 expired，名额用尽的置为 depleted；返回变更数量"""
        today = today or datetime.now(timezone.utc).date()
        async with self._uow_factory() as uow:
            changed = await DiscountEngine(uow.discount_repository).refresh_statuses(today)
        for discount, status in changed:
            logger.info(
                "discount_status_changed",
                discount_code_id=discount.id,
                code=discount.code,
                status=status.value,
            )
        logger.info("discount_sweep_done", day=today.isoformat(), changed=len(changed))
        return len(changed)
