"""
转账重试退避策略
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum


class BackoffMode(str, Enum):
    FIXED = "fixed"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class RetryBackoff:
    """
    第 n 次失败（retry_count = n）后的等待时间

    exponential: base * 2 ** (n - 1)，不超过 max_delay；fixed: 恒为 base
    """

    mode: BackoffMode = BackoffMode.EXPONENTIAL
    base_delay_seconds: int = 60
    max_delay_seconds: int = 3600

    def delay_for(self, retry_count: int) -> int:
        if self.mode == BackoffMode.FIXED:
            return self.base_delay_seconds
        exponent = max(retry_count - 1, 0)
        return min(self.base_delay_seconds * (2 ** exponent), self.max_delay_seconds)

    def next_attempt_at(self, now: datetime, retry_count: int) -> datetime:
        return now + timedelta(seconds=self.delay_for(retry_count))
