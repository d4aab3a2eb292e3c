"""
租户仓储实现（只读）
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.tenant.entity import (
    Acc,
    AccStatus,
    AuthorizationStatus,
    Course,
    TrainingCenter,
    TrainingCenterAccAuthorization,
)
from domain.tenant.repository import TenantRepository
from infrastructure.models.tenant import (
    AccModel,
    CourseModel,
    TrainingCenterAccAuthorizationModel,
    TrainingCenterModel,
)
from infrastructure.repositories._utils import to_decimal


class SQLAlchemyTenantRepository(TenantRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_acc(self, acc_id: int) -> Optional[Acc]:
        model = await self.session.get(AccModel, acc_id)
        if model is None:
            return None
        return Acc(
            id=model.id,
            name=model.name,
            status=AccStatus(model.status),
            commission_percentage=to_decimal(model.commission_percentage),
            stripe_account_id=model.stripe_account_id,
            user_id=model.user_id,
        )

    async def get_training_center(self, training_center_id: int) -> Optional[TrainingCenter]:
        model = await self.session.get(TrainingCenterModel, training_center_id)
        if model is None:
            return None
        return TrainingCenter(
            id=model.id,
            name=model.name,
            status=model.status,
            user_id=model.user_id,
            stripe_account_id=model.stripe_account_id,
        )

    async def get_authorization(
        self,
        training_center_id: int,
        acc_id: int,
    ) -> Optional[TrainingCenterAccAuthorization]:
        result = await self.session.execute(
            select(TrainingCenterAccAuthorizationModel).where(
                TrainingCenterAccAuthorizationModel.training_center_id == training_center_id,
                TrainingCenterAccAuthorizationModel.acc_id == acc_id,
            )
        )
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return TrainingCenterAccAuthorization(
            id=model.id,
            training_center_id=model.training_center_id,
            acc_id=model.acc_id,
            status=AuthorizationStatus(model.status),
        )

    async def get_course(self, course_id: int) -> Optional[Course]:
        model = await self.session.get(CourseModel, course_id)
        if model is None:
            return None
        return Course(id=model.id, acc_id=model.acc_id, name=model.name, status=model.status)
