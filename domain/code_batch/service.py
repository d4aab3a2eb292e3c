"""
兑换码生成与发放
"""
from __future__ import annotations

import secrets
import string
from datetime import datetime, timezone
from typing import List, Optional

from .entity import CodeBatch, CertificateCode
from .repository import CertificateCodeRepository, DuplicateCertificateCodeError
from domain.common.exceptions import CodeGenerationException, DomainValidationException

CODE_ALPHABET = string.ascii_uppercase + string.digits


class CodeGenerator:
    """12位大写字母数字随机码，36^12 的空间足以让批量生成的碰撞概率可以忽略"""

    def __init__(self, length: int = 12, alphabet: str = CODE_ALPHABET):
        self.length = length
        self.alphabet = alphabet

    def generate(self) -> str:
        return "".join(secrets.choice(self.alphabet) for _ in range(self.length))


class CodeMintingService:
    """
    为已付款批次一次性生成 quantity 个兑换码

    唯一性先对照数据库与本批次去重，最终由唯一索引保证；
    写入触发唯一约束时整体重新生成，最多 max_insert_rounds 轮。
    """

    def __init__(
        self,
        code_repository: CertificateCodeRepository,
        generator: Optional[CodeGenerator] = None,
        max_attempts: int = 1000,
        max_insert_rounds: int = 3,
    ):
        self.code_repository = code_repository
        self.generator = generator or CodeGenerator()
        self.max_attempts = max_attempts
        self.max_insert_rounds = max_insert_rounds

    async def _unique_codes(self, quantity: int) -> List[str]:
        chosen: set[str] = set()
        attempts = 0
        while len(chosen) < quantity:
            needed = quantity - len(chosen)
            candidates = {self.generator.generate() for _ in range(needed)} - chosen
            attempts += needed
            existing = await self.code_repository.find_existing(candidates)
            chosen.update(candidates - existing)
            if len(chosen) < quantity and attempts - quantity >= self.max_attempts:
                raise CodeGenerationException(attempts)
        return list(chosen)

    async def mint(self, batch: CodeBatch, *, purchased_at: Optional[datetime] = None) -> List[CertificateCode]:
        if batch.id is None:
            raise DomainValidationException("批次尚未持久化，无法生成兑换码", field="batch_id")
        purchased_at = purchased_at or datetime.now(timezone.utc)
        unit_price = batch.unit_purchase_price
        discount_applied = batch.discount_amount > 0

        for _ in range(self.max_insert_rounds):
            codes = [
                CertificateCode(
                    id=None,
                    code=value,
                    batch_id=batch.id,
                    training_center_id=batch.training_center_id,
                    acc_id=batch.acc_id,
                    course_id=batch.course_id,
                    purchased_price=unit_price,
                    discount_applied=discount_applied,
                    discount_code_id=batch.discount_code_id,
                    purchased_at=purchased_at,
                )
                for value in await self._unique_codes(batch.quantity)
            ]
            try:
                return await self.code_repository.bulk_create(codes)
            except DuplicateCertificateCodeError:
                # 与并发写入的批次撞码，整批重新生成
                continue
        raise CodeGenerationException(self.max_insert_rounds)
