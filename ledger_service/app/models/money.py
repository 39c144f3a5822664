"""정산 통화 금액 유틸.

도메인에서는 소수점 2자리로 고정한 Decimal 을 쓰고, 저장 시에는 `$inc` 연산이 정확하도록
최소 단위 정수(x100)로 바꾼다.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any


MONEY_QUANTUM = Decimal("0.01")
MINOR_UNITS_PER_MAJOR = 100

ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """숫자/문자열을 소수점 2자리 Decimal 로 정규화한다 (ROUND_HALF_UP)."""

    if isinstance(value, float):
        # float 의 이진 표현 오차를 피하기 위해 문자열을 거친다.
        value = repr(value)
    return Decimal(value).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    return int(to_money(amount) * MINOR_UNITS_PER_MAJOR)


def from_minor_units(minor: int) -> Decimal:
    return (Decimal(minor) / MINOR_UNITS_PER_MAJOR).quantize(MONEY_QUANTUM)


def commission_share(coins: int, conversion_rate: Decimal, percent: Decimal) -> Decimal:
    """코인 사용액 중 수취인 몫을 계산한다.

    먼저 통화 가치(coins x rate)를 구한 뒤 수수료율을 적용하고, 반올림은 마지막에 한 번만 한다.
    """

    total_currency = Decimal(coins) * conversion_rate
    return to_money(total_currency * percent / Decimal(100))
