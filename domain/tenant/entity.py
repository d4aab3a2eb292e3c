"""
租户实体 - 认证机构（ACC）、培训中心及其授权关系

这些实体由其他子系统维护，本模块只读取采购流程需要的字段。
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException


class AccStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    INACTIVE = "inactive"


class AuthorizationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVOKED = "revoked"


@dataclass
class Acc:
    """认证机构"""

    id: Optional[int]
    name: str
    status: AccStatus
    commission_percentage: Decimal
    stripe_account_id: Optional[str] = None
    user_id: Optional[int] = None

    def __post_init__(self):
        if not Decimal("0") <= self.commission_percentage <= Decimal("100"):
            raise DomainValidationException(
                f"佣金比例必须在0到100之间: {self.commission_percentage}",
                field="commission_percentage",
            )

    @property
    def is_active(self) -> bool:
        return self.status == AccStatus.ACTIVE

    @property
    def has_connected_account(self) -> bool:
        return bool(self.stripe_account_id)


@dataclass
class TrainingCenter:
    id: Optional[int]
    name: str
    status: str = "active"
    user_id: Optional[int] = None
    stripe_account_id: Optional[str] = None


@dataclass
class TrainingCenterAccAuthorization:
    id: Optional[int]
    training_center_id: int
    acc_id: int
    status: AuthorizationStatus

    @property
    def is_approved(self) -> bool:
        return self.status == AuthorizationStatus.APPROVED


@dataclass
class Course:
    id: Optional[int]
    acc_id: int
    name: str
    status: str = "active"
