"""
折扣码仓储实现

名额占用/归还使用条件 UPDATE，在数据库层面保证 used_quantity 不会超过 total_quantity。
"""
from typing import Optional, List

from sqlalchemy import select, update, case
from sqlalchemy.ext.asyncio import AsyncSession

from domain.discount.entity import DiscountCode, DiscountStatus, DiscountType
from domain.discount.repository import DiscountCodeRepository
from infrastructure.models.catalog import DiscountCodeModel
from infrastructure.repositories._utils import to_decimal
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyDiscountCodeRepository(DiscountCodeRepository):
    """折扣码仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: DiscountCodeModel) -> DiscountCode:
        return DiscountCode(
            id=model.id,
            acc_id=model.acc_id,
            code=model.code,
            discount_type=DiscountType(model.discount_type),
            discount_percentage=to_decimal(model.discount_percentage),
            status=DiscountStatus(model.status),
            applicable_course_ids=list(model.applicable_course_ids or []),
            start_date=model.start_date,
            end_date=model.end_date,
            total_quantity=model.total_quantity,
            used_quantity=model.used_quantity or 0,
        )

    async def get_by_id(self, discount_code_id: int) -> Optional[DiscountCode]:
        model = await self.session.get(DiscountCodeModel, discount_code_id, populate_existing=True)
        return self._to_entity(model) if model else None

    async def get_by_code(self, acc_id: int, code: str) -> Optional[DiscountCode]:
        result = await self.session.execute(
            select(DiscountCodeModel).where(
                DiscountCodeModel.acc_id == acc_id,
                DiscountCodeModel.code == (code or "").strip().upper(),
            ).execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def create(self, discount_code: DiscountCode) -> DiscountCode:
        model = DiscountCodeModel(
            acc_id=discount_code.acc_id,
            code=discount_code.code,
            discount_type=discount_code.discount_type.value,
            discount_percentage=discount_code.discount_percentage,
            applicable_course_ids=list(discount_code.applicable_course_ids),
            start_date=discount_code.start_date,
            end_date=discount_code.end_date,
            total_quantity=discount_code.total_quantity,
            used_quantity=discount_code.used_quantity,
            status=discount_code.status.value,
        )
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)

    async def try_consume(self, discount_code_id: int) -> bool:
        next_used = DiscountCodeModel.used_quantity + 1
        result = await self.session.execute(
            update(DiscountCodeModel)
            .where(
                DiscountCodeModel.id == discount_code_id,
                DiscountCodeModel.status == DiscountStatus.ACTIVE.value,
                DiscountCodeModel.total_quantity.is_not(None),
                DiscountCodeModel.used_quantity < DiscountCodeModel.total_quantity,
            )
            .values(
                used_quantity=next_used,
                status=case(
                    (next_used >= DiscountCodeModel.total_quantity, DiscountStatus.DEPLETED.value),
                    else_=DiscountCodeModel.status,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        consumed = result.rowcount == 1
        if not consumed:
            logger.info("discount_consume_rejected", discount_code_id=discount_code_id)
        return consumed

    async def release(self, discount_code_id: int) -> bool:
        result = await self.session.execute(
            update(DiscountCodeModel)
            .where(
                DiscountCodeModel.id == discount_code_id,
                DiscountCodeModel.used_quantity > 0,
            )
            .values(
                used_quantity=DiscountCodeModel.used_quantity - 1,
                status=case(
                    (DiscountCodeModel.status == DiscountStatus.DEPLETED.value, DiscountStatus.ACTIVE.value),
                    else_=DiscountCodeModel.status,
                ),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def set_status(self, discount_code_id: int, status: DiscountStatus) -> None:
        await self.session.execute(
            update(DiscountCodeModel)
            .where(DiscountCodeModel.id == discount_code_id)
            .values(status=status.value)
            .execution_options(synchronize_session=False)
        )

    async def list_by_status(self, status: DiscountStatus) -> List[DiscountCode]:
        result = await self.session.execute(
            select(DiscountCodeModel)
            .where(DiscountCodeModel.status == status.value)
            .order_by(DiscountCodeModel.id)
            .execution_options(populate_existing=True)
        )
        return [self._to_entity(m) for m in result.scalars().all()]
