"""
折扣领域服务
"""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Union

from .entity import (
    DiscountCode,
    DiscountType,
    DiscountStatus,
    DiscountRejection,
    DiscountValidation,
)
from .repository import DiscountCodeRepository
from domain.common.exceptions import DiscountInvalidException
from domain.common.money import to_money, percentage_of


class DiscountEngine:
    """
    折扣码校验、计算与核销

    校验不修改数据；名额只在采购真正提交时通过 consume 原子占用，
    避免已校验但放弃支付的请求占用名额。
    """

    def __init__(self, discount_repository: DiscountCodeRepository):
        self.discount_repository = discount_repository

    async def validate(
        self,
        code: str,
        acc_id: int,
        course_id: int,
        at_time: Union[date, datetime],
    ) -> DiscountValidation:
        normalized = (code or "").strip().upper()
        day = at_time.date() if isinstance(at_time, datetime) else at_time
        discount = await self.discount_repository.get_by_code(acc_id, normalized)
        if discount is None:
            return DiscountValidation.rejected(normalized, DiscountRejection.NOT_FOUND)
        rejection = discount.rejection_for(course_id, day)
        if rejection is not None:
            return DiscountValidation.rejected(normalized, rejection)
        return DiscountValidation.accepted(discount)

    async def require_valid(
        self,
        code: str,
        acc_id: int,
        course_id: int,
        at_time: Union[date, datetime],
    ) -> DiscountCode:
        """校验失败即抛出 DiscountInvalidException（采购流程中折扣码无效是硬错误）"""
        result = await self.validate(code, acc_id, course_id, at_time)
        if not result.valid:
            raise DiscountInvalidException(result.code, result.reason.value)
        return result.discount_code

    @staticmethod
    def compute_discount(base_amount: Decimal, percentage: Optional[Decimal]) -> Decimal:
        """折扣金额 = base_amount * percentage / 100，保留两位小数，限定在 [0, base_amount]"""
        if not percentage or base_amount <= 0:
            return Decimal("0.00")
        discount = percentage_of(base_amount, percentage)
        if discount < 0:
            return Decimal("0.00")
        return min(discount, to_money(base_amount))

    async def consume(self, discount_code: DiscountCode) -> None:
        """每个批次占用一个名额；限时折扣码无需计数"""
        if discount_code.discount_type != DiscountType.QUANTITY_BASED:
            return
        consumed = await self.discount_repository.try_consume(discount_code.id)
        if not consumed:
            raise DiscountInvalidException(discount_code.code, DiscountRejection.DEPLETED.value)

    async def release(self, discount_code_id: int) -> None:
        """归还人工付款被驳回时预占的名额"""
        discount = await self.discount_repository.get_by_id(discount_code_id)
        if discount is None or discount.discount_type != DiscountType.QUANTITY_BASED:
            return
        await self.discount_repository.release(discount_code_id)

    async def refresh_statuses(self, today: date) -> list[tuple[DiscountCode, DiscountStatus]]:
        """巡检所有 active 折扣码：过期 → expired，用尽 → depleted；返回发生变化的折扣码及新状态"""
        changed = []
        for discount in await self.discount_repository.list_by_status(DiscountStatus.ACTIVE):
            new_status = discount.status_on(today)
            if new_status != discount.status:
                await self.discount_repository.set_status(discount.id, new_status)
                changed.append((discount, new_status))
        return changed
