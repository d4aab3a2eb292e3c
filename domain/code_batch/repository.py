"""
兑换码批次仓储接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List, Iterable

from .entity import CodeBatch, CertificateCode, BatchPaymentStatus


class DuplicateCertificateCodeError(Exception):
    """批量写入兑换码时触发唯一约束"""


class CodeBatchRepository(ABC):

    @abstractmethod
    async def create(self, batch: CodeBatch) -> CodeBatch:
        pass

    @abstractmethod
    async def get_by_id(self, batch_id: int, *, for_update: bool = False) -> Optional[CodeBatch]:
        """for_update=True 时加行锁（SELECT ... FOR UPDATE）"""
        pass

    @abstractmethod
    async def get_by_payment_intent(self, payment_intent_id: str) -> Optional[CodeBatch]:
        pass

    @abstractmethod
    async def update(self, batch: CodeBatch) -> CodeBatch:
        pass

    @abstractmethod
    async def transition_status(
        self,
        batch_id: int,
        expected: BatchPaymentStatus,
        target: BatchPaymentStatus,
        **fields,
    ) -> bool:
        """
        条件状态迁移：仅当当前状态仍为 expected 时更新为 target

        返回 False 表示已被其他操作处理。
        """
        pass

    @abstractmethod
    async def list_pending_manual(self, acc_id: Optional[int] = None, limit: int = 100) -> List[CodeBatch]:
        pass


class CertificateCodeRepository(ABC):

    @abstractmethod
    async def find_existing(self, codes: Iterable[str]) -> set[str]:
        """返回已存在于库中的兑换码"""
        pass

    @abstractmethod
    async def bulk_create(self, codes: List[CertificateCode]) -> List[CertificateCode]:
        """批量写入；违反唯一约束时抛出 DuplicateCertificateCodeError 且不留下部分数据"""
        pass

    @abstractmethod
    async def count_by_batch(self, batch_id: int) -> int:
        pass

    @abstractmethod
    async def list_by_batch(self, batch_id: int) -> List[CertificateCode]:
        pass

    @abstractmethod
    async def get_by_id(self, code_id: int) -> Optional[CertificateCode]:
        pass

    @abstractmethod
    async def mark_used(
        self,
        code_id: int,
        training_center_id: int,
        certificate_id: int,
        used_at: datetime,
    ) -> bool:
        """条件更新 status available → used；返回 False 表示兑换码不可用"""
        pass
