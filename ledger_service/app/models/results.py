"""원장 연산 결과 타입.

예상 가능한 비즈니스 거절(잔액 부족, 기능 비활성)은 예외가 아니라 결과 값으로 돌려준다.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from .transaction import LedgerTransaction


class SpendRejectionReason(str, Enum):
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    FEATURE_DISABLED = "FEATURE_DISABLED"


@dataclass(frozen=True, slots=True)
class SpendSucceeded:
    transaction: LedgerTransaction
    new_balance: int
    beneficiary_share: Decimal
    # 같은 멱등 키로 재요청되어 기존 거래를 돌려준 경우
    replayed: bool = False

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class SpendRejected:
    reason: SpendRejectionReason
    message: str
    required_coins: int | None = None

    @property
    def ok(self) -> bool:
        return False


SpendResult = SpendSucceeded | SpendRejected


@dataclass(frozen=True, slots=True)
class CreditResult:
    transaction: LedgerTransaction
    new_balance: int
    replayed: bool = False
