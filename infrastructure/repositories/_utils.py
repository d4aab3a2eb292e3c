"""仓储实现共用的小工具"""
from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Optional


def to_decimal(value: Any) -> Optional[Decimal]:
    """数据库数值转 Decimal（SQLite 可能返回 float）"""
    if value is None:
        return None
    return Decimal(str(value))


def column_values(fields: dict[str, Any]) -> dict[str, Any]:
    """把枚举值展开成列值，供 UPDATE ... VALUES 使用"""
    return {
        key: value.value if isinstance(value, Enum) else value
        for key, value in fields.items()
    }
