"""
账务仓储实现 - 交易、佣金分账、月度结算
"""
from datetime import date, datetime, timezone
from typing import Optional, List

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import (
    PurchaseAlreadyProcessedException,
    SettlementNotFoundException,
    TransactionNotFoundException,
)
from domain.common.party import PartyRef
from domain.ledger.entity import (
    CommissionLedger,
    MonthlySettlement,
    MonthlySettlementStatus,
    PaymentType,
    SettlementStatus,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from domain.ledger.repository import (
    CommissionLedgerRepository,
    MonthlySettlementRepository,
    TransactionRepository,
)
from infrastructure.models.ledger import (
    CommissionLedgerModel,
    MonthlySettlementModel,
    TransactionModel,
)
from infrastructure.repositories._utils import column_values, to_decimal
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyTransactionRepository(TransactionRepository):
    """交易仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: TransactionModel) -> Transaction:
        """将数据库模型转换为领域实体"""
        return Transaction(
            id=model.id,
            transaction_type=TransactionType(model.transaction_type),
            payer=PartyRef.parse(model.payer_type, model.payer_id),
            payee=PartyRef.parse(model.payee_type, model.payee_id),
            amount=to_decimal(model.amount),
            currency=model.currency,
            payment_method=model.payment_method,
            status=TransactionStatus(model.status),
            payment_type=PaymentType(model.payment_type),
            payment_gateway_transaction_id=model.payment_gateway_transaction_id,
            commission_amount=to_decimal(model.commission_amount),
            provider_amount=to_decimal(model.provider_amount),
            reference_type=model.reference_type,
            reference_id=model.reference_id,
            description=model.description,
            failure_reason=model.failure_reason,
            completed_at=model.completed_at,
            refunded_at=model.refunded_at,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    @staticmethod
    def _apply(model: TransactionModel, entity: Transaction) -> None:
        model.status = entity.status.value
        model.payment_gateway_transaction_id = entity.payment_gateway_transaction_id
        model.commission_amount = entity.commission_amount
        model.provider_amount = entity.provider_amount
        model.reference_type = entity.reference_type
        model.reference_id = entity.reference_id
        model.description = entity.description
        model.failure_reason = entity.failure_reason
        model.completed_at = entity.completed_at
        model.refunded_at = entity.refunded_at

    async def create(self, transaction: Transaction) -> Transaction:
        """创建交易记录"""
        model = TransactionModel(
            transaction_type=transaction.transaction_type.value,
            payer_type=transaction.payer.party_type.value,
            payer_id=transaction.payer.party_id,
            payee_type=transaction.payee.party_type.value,
            payee_id=transaction.payee.party_id,
            amount=transaction.amount,
            currency=transaction.currency,
            payment_method=transaction.payment_method,
            payment_type=transaction.payment_type.value,
        )
        self._apply(model, transaction)
        try:
            # 保存点内写入，唯一约束冲突不影响外层事务的已有写入
            async with self.session.begin_nested():
                self.session.add(model)
                await self.session.flush()
        except IntegrityError as e:
            msg = str(e.orig).lower()
            if transaction.payment_gateway_transaction_id and "payment_gateway_transaction_id" in msg:
                logger.warning(
                    "transaction_create_conflict",
                    payment_gateway_transaction_id=transaction.payment_gateway_transaction_id,
                )
                raise PurchaseAlreadyProcessedException(transaction.payment_gateway_transaction_id) from e
            raise
        await self.session.refresh(model)
        logger.info(
            "transaction_created",
            transaction_id=model.id,
            transaction_type=model.transaction_type,
            amount=str(model.amount),
            status=model.status,
        )
        return self._to_entity(model)

    async def get_by_id(self, transaction_id: int, *, for_update: bool = False) -> Optional[Transaction]:
        query = select(TransactionModel).where(TransactionModel.id == transaction_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query.execution_options(populate_existing=True))
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def get_by_gateway_id(self, gateway_transaction_id: str, *, for_update: bool = False) -> Optional[Transaction]:
        query = select(TransactionModel).where(
            TransactionModel.payment_gateway_transaction_id == gateway_transaction_id
        )
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query.execution_options(populate_existing=True))
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def update(self, transaction: Transaction) -> Transaction:
        model = await self.session.get(TransactionModel, transaction.id)
        if model is None:
            raise TransactionNotFoundException(transaction.id)
        self._apply(model, transaction)
        await self.session.flush()
        await self.session.refresh(model)
        logger.info("transaction_updated", transaction_id=model.id, status=model.status)
        return self._to_entity(model)

    async def transition_status(
        self,
        transaction_id: int,
        expected: TransactionStatus,
        target: TransactionStatus,
        **fields,
    ) -> bool:
        values = column_values(fields)
        values["status"] = target.value
        values["updated_at"] = datetime.now(timezone.utc)
        result = await self.session.execute(
            update(TransactionModel)
            .where(
                TransactionModel.id == transaction_id,
                TransactionModel.status == expected.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class SQLAlchemyCommissionLedgerRepository(CommissionLedgerRepository):
    """佣金分账仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: CommissionLedgerModel) -> CommissionLedger:
        return CommissionLedger(
            id=model.id,
            transaction_id=model.transaction_id,
            acc_id=model.acc_id,
            group_commission_amount=to_decimal(model.group_commission_amount),
            group_commission_percentage=to_decimal(model.group_commission_percentage),
            acc_commission_amount=to_decimal(model.acc_commission_amount),
            acc_commission_percentage=to_decimal(model.acc_commission_percentage),
            training_center_id=model.training_center_id,
            settlement_status=SettlementStatus(model.settlement_status),
            settlement_date=model.settlement_date,
            monthly_settlement_id=model.monthly_settlement_id,
            created_at=model.created_at,
        )

    async def create(self, entry: CommissionLedger) -> CommissionLedger:
        model = CommissionLedgerModel(
            transaction_id=entry.transaction_id,
            acc_id=entry.acc_id,
            training_center_id=entry.training_center_id,
            group_commission_amount=entry.group_commission_amount,
            group_commission_percentage=entry.group_commission_percentage,
            acc_commission_amount=entry.acc_commission_amount,
            acc_commission_percentage=entry.acc_commission_percentage,
            settlement_status=entry.settlement_status.value,
            settlement_date=entry.settlement_date,
            monthly_settlement_id=entry.monthly_settlement_id,
        )
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)

    async def get_by_transaction(self, transaction_id: int) -> Optional[CommissionLedger]:
        result = await self.session.execute(
            select(CommissionLedgerModel)
            .where(CommissionLedgerModel.transaction_id == transaction_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list_unsettled_between(self, start: datetime, end: datetime) -> List[CommissionLedger]:
        result = await self.session.execute(
            select(CommissionLedgerModel)
            .join(TransactionModel, TransactionModel.id == CommissionLedgerModel.transaction_id)
            .where(
                TransactionModel.status == TransactionStatus.COMPLETED.value,
                TransactionModel.completed_at >= start,
                TransactionModel.completed_at < end,
                CommissionLedgerModel.settlement_status == SettlementStatus.PENDING.value,
                CommissionLedgerModel.monthly_settlement_id.is_(None),
            )
            .order_by(CommissionLedgerModel.acc_id, CommissionLedgerModel.id)
            .execution_options(populate_existing=True)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def assign_settlement(self, entry_ids: List[int], monthly_settlement_id: int) -> None:
        if not entry_ids:
            return
        await self.session.execute(
            update(CommissionLedgerModel)
            .where(CommissionLedgerModel.id.in_(entry_ids))
            .values(monthly_settlement_id=monthly_settlement_id)
            .execution_options(synchronize_session=False)
        )

    async def mark_settled(self, monthly_settlement_id: int, on: date) -> int:
        result = await self.session.execute(
            update(CommissionLedgerModel)
            .where(
                CommissionLedgerModel.monthly_settlement_id == monthly_settlement_id,
                CommissionLedgerModel.settlement_status == SettlementStatus.PENDING.value,
            )
            .values(settlement_status=SettlementStatus.SETTLED.value, settlement_date=on)
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0)


class SQLAlchemyMonthlySettlementRepository(MonthlySettlementRepository):
    """月度结算单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: MonthlySettlementModel) -> MonthlySettlement:
        return MonthlySettlement(
            id=model.id,
            settlement_month=model.settlement_month,
            acc_id=model.acc_id,
            total_revenue=to_decimal(model.total_revenue),
            group_commission_amount=to_decimal(model.group_commission_amount),
            acc_amount=to_decimal(model.acc_amount),
            entry_count=model.entry_count,
            status=MonthlySettlementStatus(model.status),
            request_date=model.request_date,
            payment_date=model.payment_date,
            payment_method=model.payment_method,
            payment_reference=model.payment_reference,
        )

    async def get_by_id(self, settlement_id: int, *, for_update: bool = False) -> Optional[MonthlySettlement]:
        query = select(MonthlySettlementModel).where(MonthlySettlementModel.id == settlement_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query.execution_options(populate_existing=True))
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def get_for_acc_month(self, acc_id: int, settlement_month: str) -> Optional[MonthlySettlement]:
        result = await self.session.execute(
            select(MonthlySettlementModel)
            .where(
                MonthlySettlementModel.acc_id == acc_id,
                MonthlySettlementModel.settlement_month == settlement_month,
            )
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def save(self, settlement: MonthlySettlement) -> MonthlySettlement:
        if settlement.id is None:
            model = MonthlySettlementModel(
                settlement_month=settlement.settlement_month,
                acc_id=settlement.acc_id,
            )
            self.session.add(model)
        else:
            model = await self.session.get(MonthlySettlementModel, settlement.id)
            if model is None:
                raise SettlementNotFoundException(settlement.id)
        model.total_revenue = settlement.total_revenue
        model.group_commission_amount = settlement.group_commission_amount
        model.acc_amount = settlement.acc_amount
        model.entry_count = settlement.entry_count
        model.status = settlement.status.value
        model.request_date = settlement.request_date
        model.payment_date = settlement.payment_date
        model.payment_method = settlement.payment_method
        model.payment_reference = settlement.payment_reference
        await self.session.flush()
        await self.session.refresh(model)
        return self._to_entity(model)

    async def list_by_month(self, settlement_month: str) -> List[MonthlySettlement]:
        result = await self.session.execute(
            select(MonthlySettlementModel)
            .where(MonthlySettlementModel.settlement_month == settlement_month)
            .order_by(MonthlySettlementModel.acc_id)
        )
        return [self._to_entity(m) for m in result.scalars().all()]
