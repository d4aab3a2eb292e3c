"""Unit of Work 抽象定义"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.tenant.repository import TenantRepository
from domain.pricing.repository import CoursePricingRepository
from domain.discount.repository import DiscountCodeRepository
from domain.code_batch.repository import CodeBatchRepository, CertificateCodeRepository
from domain.ledger.repository import (
    TransactionRepository,
    CommissionLedgerRepository,
    MonthlySettlementRepository,
)
from domain.transfer.repository import TransferRepository


class AbstractUnitOfWork(ABC):
    """应用层事务边界控制抽象

    进入上下文即开启事务；块内抛出异常则整体回滚，否则自动提交。
    """

    tenant_repository: TenantRepository
    pricing_repository: CoursePricingRepository
    discount_repository: DiscountCodeRepository
    batch_repository: CodeBatchRepository
    code_repository: CertificateCodeRepository
    transaction_repository: TransactionRepository
    ledger_repository: CommissionLedgerRepository
    settlement_repository: MonthlySettlementRepository
    transfer_repository: TransferRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self._reset_repositories()

    def _reset_repositories(self) -> None:
        self.tenant_repository = None  # type: ignore[assignment]
        self.pricing_repository = None  # type: ignore[assignment]
        self.discount_repository = None  # type: ignore[assignment]
        self.batch_repository = None  # type: ignore[assignment]
        self.code_repository = None  # type: ignore[assignment]
        self.transaction_repository = None  # type: ignore[assignment]
        self.ledger_repository = None  # type: ignore[assignment]
        self.settlement_repository = None  # type: ignore[assignment]
        self.transfer_repository = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # 只在非只读且未显式提交时自动提交
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """提交事务"""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """回滚事务"""
        ...
