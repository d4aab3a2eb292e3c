"""
租户仓储接口
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Acc, TrainingCenter, TrainingCenterAccAuthorization, Course


class TenantRepository(ABC):
    """ACC / 培训中心 / 授权关系 / 课程的只读访问"""

    @abstractmethod
    async def get_acc(self, acc_id: int) -> Optional[Acc]:
        pass

    @abstractmethod
    async def get_training_center(self, training_center_id: int) -> Optional[TrainingCenter]:
        pass

    @abstractmethod
    async def get_authorization(
        self,
        training_center_id: int,
        acc_id: int,
    ) -> Optional[TrainingCenterAccAuthorization]:
        """获取培训中心在该ACC下的授权记录"""
        pass

    @abstractmethod
    async def get_course(self, course_id: int) -> Optional[Course]:
        pass
