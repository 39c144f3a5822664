"""원장 거래(불변 기록) 도메인 모델."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .money import ZERO


class TransactionKind(str, Enum):
    SPEND_CHAT = "spend_chat"
    SPEND_CALL = "spend_call"
    PURCHASE = "purchase"
    PAYOUT = "payout"
    REFUND = "refund"
    BONUS = "bonus"


SPEND_KINDS = frozenset({TransactionKind.SPEND_CHAT, TransactionKind.SPEND_CALL})
CREDIT_KINDS = frozenset(
    {TransactionKind.PURCHASE, TransactionKind.REFUND, TransactionKind.BONUS}
)


class LedgerTransaction(BaseModel):
    """한 번의 가치 이동 기록.

    - spend: coins 는 차감된 양(양수), currency_amount 는 수취인에게 적립된 몫
    - credit: coins 는 잔액에 반영된 부호 있는 양
    - payout: coins 는 0, currency_amount 는 송금액
    """

    id: str | None = None
    actor_code: str
    beneficiary_code: str | None = None
    kind: TransactionKind
    coins: int
    currency_amount: Decimal = ZERO
    balance_after: int | None = None
    idempotency_key: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
