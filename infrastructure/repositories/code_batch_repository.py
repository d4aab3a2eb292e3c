"""
兑换码批次与兑换码仓储实现
"""
from datetime import datetime, timezone
from typing import Optional, List, Iterable

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.code_batch.entity import (
    BatchPaymentStatus,
    CertificateCode,
    CodeBatch,
    CodeStatus,
    PaymentMethod,
)
from domain.code_batch.repository import (
    CertificateCodeRepository,
    CodeBatchRepository,
    DuplicateCertificateCodeError,
)
from domain.common.exceptions import BatchNotFoundException
from infrastructure.models.code_batch import CertificateCodeModel, CodeBatchModel
from infrastructure.repositories._utils import column_values, to_decimal
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyCodeBatchRepository(CodeBatchRepository):
    """兑换码批次仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: CodeBatchModel) -> CodeBatch:
        """将数据库模型转换为领域实体"""
        return CodeBatch(
            id=model.id,
            training_center_id=model.training_center_id,
            acc_id=model.acc_id,
            course_id=model.course_id,
            quantity=model.quantity,
            unit_price=to_decimal(model.unit_price),
            total_amount=to_decimal(model.total_amount),
            discount_amount=to_decimal(model.discount_amount),
            final_amount=to_decimal(model.final_amount),
            currency=model.currency,
            payment_method=PaymentMethod(model.payment_method),
            payment_status=BatchPaymentStatus(model.payment_status),
            transaction_id=model.transaction_id,
            discount_code_id=model.discount_code_id,
            payment_intent_id=model.payment_intent_id,
            payment_receipt_url=model.payment_receipt_url,
            payment_amount=to_decimal(model.payment_amount),
            verified_by=model.verified_by,
            verified_at=model.verified_at,
            rejection_reason=model.rejection_reason,
            created_by=model.created_by,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    @staticmethod
    def _apply(model: CodeBatchModel, batch: CodeBatch) -> None:
        model.payment_status = batch.payment_status.value
        model.transaction_id = batch.transaction_id
        model.payment_intent_id = batch.payment_intent_id
        model.payment_receipt_url = batch.payment_receipt_url
        model.payment_amount = batch.payment_amount
        model.verified_by = batch.verified_by
        model.verified_at = batch.verified_at
        model.rejection_reason = batch.rejection_reason

    async def create(self, batch: CodeBatch) -> CodeBatch:
        model = CodeBatchModel(
            training_center_id=batch.training_center_id,
            acc_id=batch.acc_id,
            course_id=batch.course_id,
            quantity=batch.quantity,
            unit_price=batch.unit_price,
            total_amount=batch.total_amount,
            discount_amount=batch.discount_amount,
            final_amount=batch.final_amount,
            currency=batch.currency,
            discount_code_id=batch.discount_code_id,
            payment_method=batch.payment_method.value,
            created_by=batch.created_by,
        )
        self._apply(model, batch)
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        logger.info(
            "code_batch_created",
            batch_id=model.id,
            training_center_id=model.training_center_id,
            quantity=model.quantity,
            payment_method=model.payment_method,
        )
        return self._to_entity(model)

    async def get_by_id(self, batch_id: int, *, for_update: bool = False) -> Optional[CodeBatch]:
        query = select(CodeBatchModel).where(CodeBatchModel.id == batch_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query.execution_options(populate_existing=True))
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def get_by_payment_intent(self, payment_intent_id: str) -> Optional[CodeBatch]:
        result = await self.session.execute(
            select(CodeBatchModel)
            .where(CodeBatchModel.payment_intent_id == payment_intent_id)
            .order_by(CodeBatchModel.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def update(self, batch: CodeBatch) -> CodeBatch:
        model = await self.session.get(CodeBatchModel, batch.id)
        if model is None:
            raise BatchNotFoundException(batch.id)
        self._apply(model, batch)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)

    async def transition_status(
        self,
        batch_id: int,
        expected: BatchPaymentStatus,
        target: BatchPaymentStatus,
        **fields,
    ) -> bool:
        values = column_values(fields)
        values["payment_status"] = target.value
        values["updated_at"] = datetime.now(timezone.utc)
        result = await self.session.execute(
            update(CodeBatchModel)
            .where(
                CodeBatchModel.id == batch_id,
                CodeBatchModel.payment_status == expected.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        moved = result.rowcount == 1
        if moved:
            logger.info(
                "code_batch_status_changed",
                batch_id=batch_id,
                from_status=expected.value,
                to_status=target.value,
            )
        return moved

    async def list_pending_manual(self, acc_id: Optional[int] = None, limit: int = 100) -> List[CodeBatch]:
        query = select(CodeBatchModel).where(
            CodeBatchModel.payment_method == PaymentMethod.MANUAL_PAYMENT.value,
            CodeBatchModel.payment_status == BatchPaymentStatus.PENDING.value,
        )
        if acc_id is not None:
            query = query.where(CodeBatchModel.acc_id == acc_id)
        query = query.order_by(CodeBatchModel.created_at.asc()).limit(limit)
        result = await self.session.execute(query)
        return [self._to_entity(m) for m in result.scalars().all()]


class SQLAlchemyCertificateCodeRepository(CertificateCodeRepository):
    """兑换码仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: CertificateCodeModel) -> CertificateCode:
        return CertificateCode(
            id=model.id,
            code=model.code,
            batch_id=model.batch_id,
            training_center_id=model.training_center_id,
            acc_id=model.acc_id,
            course_id=model.course_id,
            purchased_price=to_decimal(model.purchased_price),
            discount_applied=bool(model.discount_applied),
            discount_code_id=model.discount_code_id,
            status=CodeStatus(model.status),
            purchased_at=model.purchased_at,
            used_at=model.used_at,
            used_for_certificate_id=model.used_for_certificate_id,
        )

    def _to_model(self, entity: CertificateCode) -> CertificateCodeModel:
        return CertificateCodeModel(
            code=entity.code,
            batch_id=entity.batch_id,
            training_center_id=entity.training_center_id,
            acc_id=entity.acc_id,
            course_id=entity.course_id,
            purchased_price=entity.purchased_price,
            discount_applied=entity.discount_applied,
            discount_code_id=entity.discount_code_id,
            status=entity.status.value,
            purchased_at=entity.purchased_at,
            used_at=entity.used_at,
            used_for_certificate_id=entity.used_for_certificate_id,
        )

    async def find_existing(self, codes: Iterable[str]) -> set[str]:
        candidates = list(codes)
        if not candidates:
            return set()
        result = await self.session.execute(
            select(CertificateCodeModel.code).where(CertificateCodeModel.code.in_(candidates))
        )
        return set(result.scalars().all())

    async def bulk_create(self, codes: List[CertificateCode]) -> List[CertificateCode]:
        models = [self._to_model(c) for c in codes]
        try:
            # 保存点内写入，冲突时只回滚本批兑换码
            async with self.session.begin_nested():
                self.session.add_all(models)
                await self.session.flush()
        except IntegrityError as e:
            logger.warning("certificate_code_conflict", count=len(models), error=str(e.orig))
            raise DuplicateCertificateCodeError(str(e.orig)) from e
        return [self._to_entity(m) for m in models]

    async def count_by_batch(self, batch_id: int) -> int:
        result = await self.session.execute(
            select(func.count(CertificateCodeModel.id)).where(CertificateCodeModel.batch_id == batch_id)
        )
        return int(result.scalar_one())

    async def list_by_batch(self, batch_id: int) -> List[CertificateCode]:
        result = await self.session.execute(
            select(CertificateCodeModel)
            .where(CertificateCodeModel.batch_id == batch_id)
            .order_by(CertificateCodeModel.id)
            .execution_options(populate_existing=True)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def get_by_id(self, code_id: int) -> Optional[CertificateCode]:
        model = await self.session.get(CertificateCodeModel, code_id, populate_existing=True)
        return self._to_entity(model) if model else None

    async def mark_used(
        self,
        code_id: int,
        training_center_id: int,
        certificate_id: int,
        used_at: datetime,
    ) -> bool:
        result = await self.session.execute(
            update(CertificateCodeModel)
            .where(
                CertificateCodeModel.id == code_id,
                CertificateCodeModel.training_center_id == training_center_id,
                CertificateCodeModel.status == CodeStatus.AVAILABLE.value,
            )
            .values(
                status=CodeStatus.USED.value,
                used_at=used_at,
                used_for_certificate_id=certificate_id,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
