"""
课程定价仓储实现
"""
from datetime import date
from typing import Optional, List

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from domain.pricing.entity import CoursePricing
from domain.pricing.repository import CoursePricingRepository
from infrastructure.models.catalog import CoursePricingModel
from infrastructure.repositories._utils import to_decimal


class SQLAlchemyCoursePricingRepository(CoursePricingRepository):
    """课程定价仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: CoursePricingModel) -> CoursePricing:
        return CoursePricing(
            id=model.id,
            course_id=model.course_id,
            acc_id=model.acc_id,
            base_price=to_decimal(model.base_price),
            currency=model.currency,
            effective_from=model.effective_from,
            effective_to=model.effective_to,
            group_commission_percentage=to_decimal(model.group_commission_percentage),
            training_center_commission_percentage=to_decimal(model.training_center_commission_percentage),
            instructor_commission_percentage=to_decimal(model.instructor_commission_percentage),
        )

    async def find_effective(self, course_id: int, acc_id: int, on: date) -> Optional[CoursePricing]:
        result = await self.session.execute(
            select(CoursePricingModel)
            .where(
                CoursePricingModel.course_id == course_id,
                CoursePricingModel.acc_id == acc_id,
                CoursePricingModel.effective_from <= on,
                or_(
                    CoursePricingModel.effective_to.is_(None),
                    CoursePricingModel.effective_to >= on,
                ),
            )
            .order_by(CoursePricingModel.effective_from.desc(), CoursePricingModel.id.desc())
            .limit(1)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list_for_course(self, course_id: int, acc_id: int) -> List[CoursePricing]:
        result = await self.session.execute(
            select(CoursePricingModel)
            .where(
                CoursePricingModel.course_id == course_id,
                CoursePricingModel.acc_id == acc_id,
            )
            .order_by(CoursePricingModel.effective_from.desc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def create(self, pricing: CoursePricing) -> CoursePricing:
        model = CoursePricingModel(
            course_id=pricing.course_id,
            acc_id=pricing.acc_id,
            base_price=pricing.base_price,
            currency=pricing.currency,
            effective_from=pricing.effective_from,
            effective_to=pricing.effective_to,
            group_commission_percentage=pricing.group_commission_percentage,
            training_center_commission_percentage=pricing.training_center_commission_percentage,
            instructor_commission_percentage=pricing.instructor_commission_percentage,
        )
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)
