from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from common.types.datetime import UtcDateTime

from ...models.commission_config import CallType
from ...models.transaction import LedgerTransaction, TransactionKind


class WalletResponse(BaseModel):
    user_code: str
    coin_balance: int


class SpendRequest(BaseModel):
    """임의 지출 요청. 채팅/통화 요금은 전용 엔드포인트를 쓴다."""

    beneficiary_code: str | None = None
    coins: int = Field(..., gt=0)
    kind: TransactionKind = TransactionKind.SPEND_CHAT
    call_type: CallType | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ChatChargeRequest(BaseModel):
    recipient_code: str
    chat_id: str | None = None


class CallChargeRequest(BaseModel):
    call_id: str
    responder_code: str
    call_type: CallType
    duration_seconds: int = Field(..., gt=0)


class CreditRequest(BaseModel):
    """결제 완료/환불/관리자 보정 적립 요청."""

    coins: int
    kind: TransactionKind = TransactionKind.PURCHASE
    external_payment_ref: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class TransactionItem(BaseModel):
    id: str | None
    actor_code: str
    beneficiary_code: str | None
    kind: TransactionKind
    coins: int
    currency_amount: Decimal
    balance_after: int | None
    metadata: dict[str, Any]
    created_at: UtcDateTime

    @classmethod
    def from_domain(cls, tx: LedgerTransaction) -> "TransactionItem":
        return cls(
            id=tx.id,
            actor_code=tx.actor_code,
            beneficiary_code=tx.beneficiary_code,
            kind=tx.kind,
            coins=tx.coins,
            currency_amount=tx.currency_amount,
            balance_after=tx.balance_after,
            metadata=tx.metadata,
            created_at=tx.created_at,
        )


class SpendResponse(BaseModel):
    transaction: TransactionItem
    new_balance: int
    beneficiary_share: Decimal
    replayed: bool = False


class CreditResponse(BaseModel):
    transaction: TransactionItem
    new_balance: int
    replayed: bool = False


class SignupBonusResponse(BaseModel):
    granted: bool
    new_balance: int
    replayed: bool = False
