"""
转账仓储实现
"""
from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import TransferNotFoundException
from domain.common.party import PartyRef
from domain.transfer.entity import Transfer, TransferStatus
from domain.transfer.repository import TransferRepository
from infrastructure.models.transfer import TransferModel
from infrastructure.repositories._utils import column_values, to_decimal
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyTransferRepository(TransferRepository):
    """转账仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: TransferModel) -> Transfer:
        """将数据库模型转换为领域实体"""
        return Transfer(
            id=model.id,
            transaction_id=model.transaction_id,
            payee=PartyRef.parse(model.user_type, model.user_id),
            gross_amount=to_decimal(model.gross_amount),
            commission_amount=to_decimal(model.commission_amount),
            net_amount=to_decimal(model.net_amount),
            currency=model.currency,
            status=TransferStatus(model.status),
            stripe_account_id=model.stripe_account_id,
            stripe_transfer_id=model.stripe_transfer_id,
            retry_count=model.retry_count,
            max_retries=model.max_retries,
            error_message=model.error_message,
            next_retry_at=model.next_retry_at,
            processed_at=model.processed_at,
            completed_at=model.completed_at,
            failed_at=model.failed_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    @staticmethod
    def _apply(model: TransferModel, transfer: Transfer) -> None:
        model.status = transfer.status.value
        model.stripe_account_id = transfer.stripe_account_id
        model.stripe_transfer_id = transfer.stripe_transfer_id
        model.retry_count = transfer.retry_count
        model.max_retries = transfer.max_retries
        model.error_message = transfer.error_message
        model.next_retry_at = transfer.next_retry_at
        model.processed_at = transfer.processed_at
        model.completed_at = transfer.completed_at
        model.failed_at = transfer.failed_at

    async def create(self, transfer: Transfer) -> Transfer:
        model = TransferModel(
            transaction_id=transfer.transaction_id,
            user_type=transfer.payee.party_type.value,
            user_id=transfer.payee.party_id,
            gross_amount=transfer.gross_amount,
            commission_amount=transfer.commission_amount,
            net_amount=transfer.net_amount,
            currency=transfer.currency,
        )
        self._apply(model, transfer)
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        logger.info(
            "transfer_created",
            transfer_id=model.id,
            transaction_id=model.transaction_id,
            net_amount=str(model.net_amount),
            status=model.status,
        )
        return self._to_entity(model)

    async def get_by_id(self, transfer_id: int, *, for_update: bool = False) -> Optional[Transfer]:
        query = select(TransferModel).where(TransferModel.id == transfer_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query.execution_options(populate_existing=True))
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list_by_transaction(self, transaction_id: int) -> List[Transfer]:
        result = await self.session.execute(
            select(TransferModel)
            .where(TransferModel.transaction_id == transaction_id)
            .order_by(TransferModel.id)
            .execution_options(populate_existing=True)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def update(self, transfer: Transfer) -> Transfer:
        model = await self.session.get(TransferModel, transfer.id)
        if model is None:
            raise TransferNotFoundException(transfer.id)
        self._apply(model, transfer)
        await self.session.flush()
        await self.session.refresh(model)
        logger.info(
            "transfer_updated",
            transfer_id=model.id,
            status=model.status,
            retry_count=model.retry_count,
        )
        return self._to_entity(model)

    async def transition_status(
        self,
        transfer_id: int,
        expected: TransferStatus,
        target: TransferStatus,
        **fields,
    ) -> bool:
        values = column_values(fields)
        values["status"] = target.value
        values["updated_at"] = datetime.now(timezone.utc)
        result = await self.session.execute(
            update(TransferModel)
            .where(
                TransferModel.id == transfer_id,
                TransferModel.status == expected.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_due_for_retry(self, now: datetime, limit: int = 100) -> List[Transfer]:
        result = await self.session.execute(
            select(TransferModel)
            .where(
                TransferModel.status == TransferStatus.FAILED.value,
                TransferModel.retry_count < TransferModel.max_retries,
                TransferModel.next_retry_at.is_not(None),
                TransferModel.next_retry_at <= now,
            )
            .order_by(TransferModel.next_retry_at.asc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_stale_processing(self, before: datetime, limit: int = 100) -> List[Transfer]:
        result = await self.session.execute(
            select(TransferModel)
            .where(
                TransferModel.status == TransferStatus.PROCESSING.value,
                TransferModel.processed_at.is_not(None),
                TransferModel.processed_at < before,
            )
            .order_by(TransferModel.processed_at.asc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return [self._to_entity(m) for m in result.scalars().all()]
