from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field

from common.types.datetime import UtcDateTime

from ...models.payee import PayeeContact
from ...models.redemption import Redemption, RedemptionStats, RedemptionStatus


class RedemptionCreateRequest(BaseModel):
    payee_code: str
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    destination: str = Field(..., description="UPI 핸들 (예: name@bank)")
    contact: PayeeContact | None = None


class RedemptionStatusUpdateRequest(BaseModel):
    """관리자 상태 변경 요청.

    - rejected: reason 필수
    - completed: external_transaction_id 필수 (수동 송금)
    """

    status: RedemptionStatus
    admin_code: str
    reason: str | None = None
    external_transaction_id: str | None = None
    notes: str | None = None


class RedemptionItem(BaseModel):
    id: str | None
    payee_code: str
    amount: Decimal
    destination: str
    status: RedemptionStatus
    admin_notes: str | None
    processed_by: str | None
    processed_at: UtcDateTime | None
    external_transaction_id: str | None
    rejection_reason: str | None
    payout_id: str | None
    created_at: UtcDateTime
    updated_at: UtcDateTime

    @classmethod
    def from_domain(cls, redemption: Redemption) -> "RedemptionItem":
        return cls(**redemption.model_dump(exclude={"contact"}))


class RedemptionStatsItem(BaseModel):
    status: RedemptionStatus
    count: int
    amount: Decimal

    @classmethod
    def from_domain(cls, stats: RedemptionStats) -> "RedemptionStatsItem":
        return cls(status=stats.status, count=stats.count, amount=stats.amount)
