from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from common.types.datetime import UtcDateTime

from ...models.payee import PayeeContact
from ...models.payout import Payout, PayoutStatus


class DirectPayoutRequest(BaseModel):
    payee_code: str
    destination: str
    # 생략하면 pending 전액
    amount: Decimal | None = Field(default=None, gt=0, decimal_places=2)
    contact: PayeeContact | None = None


class PayoutRejectRequest(BaseModel):
    admin_code: str
    reason: str = Field(..., min_length=1)


class PayoutItem(BaseModel):
    id: str
    payee_code: str
    redemption_id: str | None
    amount: Decimal
    destination: str
    status: PayoutStatus
    transfer_id: str
    gateway_reference_id: str | None
    last_error: str | None
    attempts: int
    processed_by: str | None
    rejection_reason: str | None
    completed_at: UtcDateTime | None
    created_at: UtcDateTime
    updated_at: UtcDateTime

    @classmethod
    def from_domain(cls, payout: Payout) -> "PayoutItem":
        return cls(**payout.model_dump(exclude={"contact", "gateway_response"}))


class PayoutDetail(PayoutItem):
    gateway_response: dict[str, Any] | None = None

    @classmethod
    def from_domain(cls, payout: Payout) -> "PayoutDetail":
        return cls(**payout.model_dump(exclude={"contact"}))


class GatewayBalanceResponse(BaseModel):
    available_balance: Decimal


class WebhookAck(BaseModel):
    status: str = "ok"
    applied: bool
