"""
课程定价仓储接口
"""
from abc import ABC, abstractmethod
from datetime import date
from typing import Optional, List

from .entity import CoursePricing


class CoursePricingRepository(ABC):

    @abstractmethod
    async def find_effective(self, course_id: int, acc_id: int, on: date) -> Optional[CoursePricing]:
        """获取指定日期生效的价格行（多行时取 effective_from 最新的一行）"""
        pass

    @abstractmethod
    async def list_for_course(self, course_id: int, acc_id: int) -> List[CoursePricing]:
        """获取该课程的全部价格行，按 effective_from 倒序"""
        pass

    @abstractmethod
    async def create(self, pricing: CoursePricing) -> CoursePricing:
        pass
