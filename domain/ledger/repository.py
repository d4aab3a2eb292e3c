"""
账务仓储接口
"""
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Optional, List

from .entity import (
    Transaction,
    TransactionStatus,
    CommissionLedger,
    MonthlySettlement,
)


class TransactionRepository(ABC):

    @abstractmethod
    async def create(self, transaction: Transaction) -> Transaction:
        """创建交易；网关交易号重复时抛出 PurchaseAlreadyProcessedException"""
        pass

    @abstractmethod
    async def get_by_id(self, transaction_id: int, *, for_update: bool = False) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def get_by_gateway_id(self, gateway_transaction_id: str, *, for_update: bool = False) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def update(self, transaction: Transaction) -> Transaction:
        pass

    @abstractmethod
    async def transition_status(
        self,
        transaction_id: int,
        expected: TransactionStatus,
        target: TransactionStatus,
        **fields,
    ) -> bool:
        """条件状态迁移，返回是否成功"""
        pass


class CommissionLedgerRepository(ABC):

    @abstractmethod
    async def create(self, entry: CommissionLedger) -> CommissionLedger:
        pass

    @abstractmethod
    async def get_by_transaction(self, transaction_id: int) -> Optional[CommissionLedger]:
        pass

    @abstractmethod
    async def list_unsettled_between(self, start: datetime, end: datetime) -> List[CommissionLedger]:
        """已完成交易（completed_at ∈ [start, end)）中尚未归入结算单的待结算记录"""
        pass

    @abstractmethod
    async def assign_settlement(self, entry_ids: List[int], monthly_settlement_id: int) -> None:
        pass

    @abstractmethod
    async def mark_settled(self, monthly_settlement_id: int, on: date) -> int:
        """将结算单下的记录标记为 settled，返回更新条数"""
        pass


class MonthlySettlementRepository(ABC):

    @abstractmethod
    async def get_by_id(self, settlement_id: int, *, for_update: bool = False) -> Optional[MonthlySettlement]:
        pass

    @abstractmethod
    async def get_for_acc_month(self, acc_id: int, settlement_month: str) -> Optional[MonthlySettlement]:
        pass

    @abstractmethod
    async def save(self, settlement: MonthlySettlement) -> MonthlySettlement:
        """新建或更新"""
        pass

    @abstractmethod
    async def list_by_month(self, settlement_month: str) -> List[MonthlySettlement]:
        pass
