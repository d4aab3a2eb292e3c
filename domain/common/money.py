"""金额工具：统一保留两位小数，四舍五入（ROUND_HALF_UP）"""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

CENT = Decimal("0.01")
HUNDRED = Decimal("100")

# 人工核对付款金额时允许的误差
AMOUNT_TOLERANCE = Decimal("0.01")


def to_money(value: Union[Decimal, int, float, str]) -> Decimal:
    """转换为两位小数的 Decimal；float 先转字符串以避免二进制误差"""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def percentage_of(amount: Decimal, percentage: Decimal) -> Decimal:
    return to_money(amount * percentage / HUNDRED)


def amounts_match(expected: Decimal, provided: Decimal, tolerance: Decimal = AMOUNT_TOLERANCE) -> bool:
    """按原始差额比较，申报金额不先舍入"""
    return abs(Decimal(expected) - Decimal(provided)) <= tolerance


# 以最小货币单位计价时不带小数的币种
ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW"}


def to_minor_units(amount: Decimal, currency: str) -> int:
    """金额转为最小货币单位（如美分），用于与支付渠道金额比对"""
    exponent = 0 if (currency or "").upper() in ZERO_DECIMAL_CURRENCIES else 2
    return int((to_money(amount) * (Decimal(10) ** exponent)).to_integral_value(rounding=ROUND_HALF_UP))


def from_minor_units(amount_minor: int, currency: str) -> Decimal:
    exponent = 0 if (currency or "").upper() in ZERO_DECIMAL_CURRENCIES else 2
    return to_money(Decimal(amount_minor) / (Decimal(10) ** exponent))
