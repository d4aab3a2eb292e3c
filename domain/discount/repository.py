"""
折扣码仓储接口
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import DiscountCode, DiscountStatus


class DiscountCodeRepository(ABC):

    @abstractmethod
    async def get_by_id(self, discount_code_id: int) -> Optional[DiscountCode]:
        pass

    @abstractmethod
    async def get_by_code(self, acc_id: int, code: str) -> Optional[DiscountCode]:
        """按 ACC 范围查找折扣码"""
        pass

    @abstractmethod
    async def create(self, discount_code: DiscountCode) -> DiscountCode:
        pass

    @abstractmethod
    async def try_consume(self, discount_code_id: int) -> bool:
        """
        原子地占用一个名额

        等价于 UPDATE ... SET used_quantity = used_quantity + 1
        WHERE id = :id AND status = 'active' AND used_quantity < total_quantity；
        影响行数为 0 时返回 False。
        """
        pass

    @abstractmethod
    async def release(self, discount_code_id: int) -> bool:
        """归还一个名额（used_quantity > 0 时减一）"""
        pass

    @abstractmethod
    async def set_status(self, discount_code_id: int, status: DiscountStatus) -> None:
        pass

    @abstractmethod
    async def list_by_status(self, status: DiscountStatus) -> List[DiscountCode]:
        pass
