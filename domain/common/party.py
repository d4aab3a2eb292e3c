"""
交易参与方与操作者

付款方/收款方不再使用 “类型字符串 + ID” 的约定式外键，而是显式的
PartyType 枚举；操作者（Actor）作为参数显式传入每个业务流程。
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException


class PartyType(str, Enum):
    """参与方类型"""
    ACC = "acc"
    TRAINING_CENTER = "training_center"
    INSTRUCTOR = "instructor"
    GROUP = "group"


# 平台方（Group）只有一个，统一使用 0 作为其 ID
GROUP_PARTY_ID = 0


@dataclass(frozen=True)
class PartyRef:
    party_type: PartyType
    party_id: int

    def __post_init__(self):
        if self.party_type != PartyType.GROUP and self.party_id <= 0:
            raise DomainValidationException(
                f"参与方ID无效: {self.party_id}",
                field="party_id",
            )

    @classmethod
    def group(cls) -> "PartyRef":
        return cls(PartyType.GROUP, GROUP_PARTY_ID)

    @classmethod
    def acc(cls, acc_id: int) -> "PartyRef":
        return cls(PartyType.ACC, acc_id)

    @classmethod
    def training_center(cls, training_center_id: int) -> "PartyRef":
        return cls(PartyType.TRAINING_CENTER, training_center_id)

    @classmethod
    def parse(cls, party_type: str, party_id: int) -> "PartyRef":
        try:
            kind = PartyType(party_type)
        except ValueError:
            raise DomainValidationException(
                f"未知的参与方类型: {party_type}",
                field="party_type",
            )
        return cls(kind, int(party_id))

    def __str__(self) -> str:
        return f"{self.party_type.value}:{self.party_id}"


@dataclass(frozen=True)
class Actor:
    """发起操作的已认证身份"""

    user_id: int
    party: PartyRef
    name: Optional[str] = None

    @property
    def is_group_admin(self) -> bool:
        return self.party.party_type == PartyType.GROUP

    def acts_for(self, party: PartyRef) -> bool:
        return self.is_group_admin or self.party == party

    @classmethod
    def system(cls) -> "Actor":
        """定时任务与渠道回调使用的系统身份"""
        return cls(user_id=0, party=PartyRef.group(), name="system")
