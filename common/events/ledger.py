"""원장(코인 잔액) 관련 이벤트 정의.

알림/지표 등 외부 협력자가 구독한다. 금액(통화)은 정밀도 손실을 막기 위해 문자열로 싣는다.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Self


class LedgerEventType:
    """원장 이벤트 타입 상수."""

    SPEND_COMMITTED = "ledger.spend_committed"
    COINS_CREDITED = "ledger.coins_credited"


@dataclass(slots=True)
class SpendCommittedEvent:
    """코인 차감 + 수취인 적립이 커밋되면 발행된다."""

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    transaction_id: str
    spender_code: str
    beneficiary_code: str | None
    kind: str
    coins: int
    beneficiary_share: str
    balance_after: int
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            transaction_id=str(data["transaction_id"]),
            spender_code=str(data["spender_code"]),
            beneficiary_code=data.get("beneficiary_code"),
            kind=str(data["kind"]),
            coins=int(data["coins"]),
            beneficiary_share=str(data["beneficiary_share"]),
            balance_after=int(data["balance_after"]),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(slots=True)
class CoinsCreditedEvent:
    """구매/보너스/환불 등으로 코인이 적립(또는 회수)되면 발행된다."""

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    transaction_id: str
    user_code: str
    kind: str
    coins: int
    balance_after: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            transaction_id=str(data["transaction_id"]),
            user_code=str(data["user_code"]),
            kind=str(data["kind"]),
            coins=int(data["coins"]),
            balance_after=int(data["balance_after"]),
        )
