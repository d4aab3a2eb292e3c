"""
课程定价实体
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from domain.common.exceptions import DomainValidationException


@dataclass
class CoursePricing:
    """
    课程定价 - 按生效区间管理的价格行

    业务规则：
    1. 同一 (course_id, acc_id) 在任一时间点最多一行处于生效状态
    2. 生效区间为闭区间 [effective_from, effective_to]，effective_to 为空表示长期有效
    3. 不做物理删除，通过新区间替代旧价格
    """

    id: Optional[int]
    course_id: int
    acc_id: int
    base_price: Decimal
    currency: str
    effective_from: date
    effective_to: Optional[date] = None
    group_commission_percentage: Decimal = Decimal("0")
    training_center_commission_percentage: Decimal = Decimal("0")
    instructor_commission_percentage: Decimal = Decimal("0")

    def __post_init__(self):
        if self.base_price < 0:
            raise DomainValidationException(
                f"课程价格不能为负数: {self.base_price}",
                field="base_price",
            )
        if self.effective_to is not None and self.effective_to < self.effective_from:
            raise DomainValidationException(
                "生效结束日期不能早于开始日期",
                field="effective_to",
            )
        self.currency = (self.currency or "").upper()

    def is_effective_on(self, day: date) -> bool:
        if self.effective_from > day:
            return False
        return self.effective_to is None or self.effective_to >= day
