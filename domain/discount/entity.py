"""
折扣码实体
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException


class DiscountType(str, Enum):
    TIME_LIMITED = "time_limited"
    QUANTITY_BASED = "quantity_based"


class DiscountStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    DEPLETED = "depleted"
    INACTIVE = "inactive"


class DiscountRejection(str, Enum):
    """折扣码校验失败原因（按校验顺序）"""
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    NOT_STARTED = "not_started"
    EXPIRED = "expired"
    DEPLETED = "depleted"
    COURSE_NOT_APPLICABLE = "course_not_applicable"


@dataclass
class DiscountCode:
    """
    折扣码 - 按 ACC 隔离

    业务规则：
    1. time_limited 必须设置起止日期，且结束日期晚于开始日期
    2. quantity_based 必须设置 total_quantity >= 1
    3. used_quantity 单调递增，且不超过 total_quantity
    4. 折扣比例在 [0, 100] 区间内
    """

    id: Optional[int]
    acc_id: int
    code: str
    discount_type: DiscountType
    discount_percentage: Decimal
    status: DiscountStatus = DiscountStatus.ACTIVE
    applicable_course_ids: list[int] = field(default_factory=list)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    total_quantity: Optional[int] = None
    used_quantity: int = 0

    def __post_init__(self):
        self.code = (self.code or "").strip().upper()
        if not self.code:
            raise DomainValidationException("折扣码不能为空", field="code")
        if not Decimal("0") <= self.discount_percentage <= Decimal("100"):
            raise DomainValidationException(
                f"折扣比例必须在0到100之间: {self.discount_percentage}",
                field="discount_percentage",
            )
        if self.discount_type == DiscountType.TIME_LIMITED:
            if self.start_date is None or self.end_date is None:
                raise DomainValidationException("限时折扣码必须设置起止日期", field="end_date")
            if self.end_date <= self.start_date:
                raise DomainValidationException("结束日期必须晚于开始日期", field="end_date")
        if self.discount_type == DiscountType.QUANTITY_BASED:
            if not self.total_quantity or self.total_quantity < 1:
                raise DomainValidationException("限量折扣码的总数量必须大于0", field="total_quantity")
            if self.used_quantity > self.total_quantity:
                raise DomainValidationException("已使用数量不能超过总数量", field="used_quantity")
        if self.applicable_course_ids is None:
            self.applicable_course_ids = []

    @property
    def remaining_quantity(self) -> Optional[int]:
        if self.total_quantity is None:
            return None
        return max(self.total_quantity - self.used_quantity, 0)

    def rejection_for(self, course_id: int, on: date) -> Optional[DiscountRejection]:
        """按固定顺序逐项检查，返回第一个失败原因；可用时返回 None"""
        if self.status == DiscountStatus.EXPIRED:
            return DiscountRejection.EXPIRED
        if self.status == DiscountStatus.DEPLETED:
            return DiscountRejection.DEPLETED
        if self.status != DiscountStatus.ACTIVE:
            return DiscountRejection.INACTIVE
        if self.start_date is not None and on < self.start_date:
            return DiscountRejection.NOT_STARTED
        if self.end_date is not None and on > self.end_date:
            return DiscountRejection.EXPIRED
        if self.discount_type == DiscountType.QUANTITY_BASED:
            if not self.remaining_quantity:
                return DiscountRejection.DEPLETED
        if self.applicable_course_ids and course_id not in self.applicable_course_ids:
            return DiscountRejection.COURSE_NOT_APPLICABLE
        return None

    def status_on(self, on: date) -> DiscountStatus:
        """定时巡检使用：根据日期与余量推导应有状态"""
        if self.status != DiscountStatus.ACTIVE:
            return self.status
        if self.end_date is not None and self.end_date < on:
            return DiscountStatus.EXPIRED
        if self.total_quantity and self.remaining_quantity == 0:
            return DiscountStatus.DEPLETED
        return DiscountStatus.ACTIVE


@dataclass
class DiscountValidation:
    """折扣码校验结果"""

    valid: bool
    code: str
    percentage: Optional[Decimal] = None
    reason: Optional[DiscountRejection] = None
    discount_code: Optional[DiscountCode] = None

    @classmethod
    def accepted(cls, discount_code: DiscountCode) -> "DiscountValidation":
        return cls(
            valid=True,
            code=discount_code.code,
            percentage=discount_code.discount_percentage,
            discount_code=discount_code,
        )

    @classmethod
    def rejected(cls, code: str, reason: DiscountRejection) -> "DiscountValidation":
        return cls(valid=False, code=code, reason=reason)
