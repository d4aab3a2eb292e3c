"""
定价领域服务
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Union

from .entity import CoursePricing
from .repository import CoursePricingRepository
from domain.common.exceptions import PricingNotFoundException


def _as_date(at_time: Union[date, datetime]) -> date:
    if isinstance(at_time, datetime):
        return at_time.date()
    return at_time


class PricingResolver:
    """查找 (课程, ACC) 在给定时间点的生效价格"""

    def __init__(self, pricing_repository: CoursePricingRepository):
        self.pricing_repository = pricing_repository

    async def resolve(
        self,
        course_id: int,
        acc_id: int,
        at_time: Union[date, datetime],
    ) -> CoursePricing:
        """
        返回生效价格，找不到时抛出 PricingNotFoundException

        调用方应将该异常视为“课程不可购买”。
        """
        day = _as_date(at_time)
        pricing = await self.pricing_repository.find_effective(course_id, acc_id, day)
        if pricing is not None:
            return pricing

        # 区分“尚未生效”与“已过期”，便于前端提示
        details: dict = {}
        rows = await self.pricing_repository.list_for_course(course_id, acc_id)
        upcoming = [p for p in rows if p.effective_from > day]
        expired = [p for p in rows if p.effective_to is not None and p.effective_to < day]
        if upcoming:
            details["effective_from"] = min(p.effective_from for p in upcoming).isoformat()
        elif expired:
            details["expired_on"] = max(p.effective_to for p in expired).isoformat()
        raise PricingNotFoundException(course_id, acc_id, details=details or None)
