"""
转账仓储接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List

from .entity import Transfer, TransferStatus


class TransferRepository(ABC):

    @abstractmethod
    async def create(self, transfer: Transfer) -> Transfer:
        pass

    @abstractmethod
    async def get_by_id(self, transfer_id: int, *, for_update: bool = False) -> Optional[Transfer]:
        pass

    @abstractmethod
    async def list_by_transaction(self, transaction_id: int) -> List[Transfer]:
        pass

    @abstractmethod
    async def update(self, transfer: Transfer) -> Transfer:
        pass

    @abstractmethod
    async def transition_status(
        self,
        transfer_id: int,
        expected: TransferStatus,
        target: TransferStatus,
        **fields,
    ) -> bool:
        """条件状态迁移（UPDATE ... WHERE status = :expected），返回是否成功"""
        pass

    @abstractmethod
    async def list_due_for_retry(self, now: datetime, limit: int = 100) -> List[Transfer]:
        """status=failed、retry_count < max_retries 且 next_retry_at <= now"""
        pass

    @abstractmethod
    async def list_stale_processing(self, before: datetime, limit: int = 100) -> List[Transfer]:
        """status=processing 且 processed_at < before（尝试中断、结果未落库）"""
        pass
