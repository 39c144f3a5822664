from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel

from common.types.datetime import UtcDateTime

from ...models.commission_config import CallType, CommissionConfig


class CommissionConfigResponse(BaseModel):
    id: str | None
    responder_commission_percent: Decimal
    admin_commission_percent: Decimal
    conversion_rate: Decimal
    minimum_redeemable: Decimal
    chat_coins_per_message: int
    audio_call_coins_per_minute: int
    video_call_coins_per_minute: int
    initial_user_coins: int
    chat_enabled: bool
    audio_call_enabled: bool
    video_call_enabled: bool
    commission_overrides: dict[CallType, Decimal]
    is_active: bool
    created_by: str | None
    created_at: UtcDateTime | None
    updated_at: UtcDateTime | None

    @classmethod
    def from_domain(cls, config: CommissionConfig) -> "CommissionConfigResponse":
        return cls(**config.model_dump())


class CommissionConfigUpdateRequest(BaseModel):
    """보낸 필드만 바뀐다. 한쪽 수수료율만 보내면 반대쪽은 100 에서 뺀 값이 된다."""

    admin_code: str
    responder_commission_percent: Decimal | None = None
    admin_commission_percent: Decimal | None = None
    conversion_rate: Decimal | None = None
    minimum_redeemable: Decimal | None = None
    chat_coins_per_message: int | None = None
    audio_call_coins_per_minute: int | None = None
    video_call_coins_per_minute: int | None = None
    initial_user_coins: int | None = None
    chat_enabled: bool | None = None
    audio_call_enabled: bool | None = None
    video_call_enabled: bool | None = None
    commission_overrides: dict[CallType, Decimal] | None = None

    def changes(self) -> dict:
        return self.model_dump(exclude={"admin_code"}, exclude_unset=True, exclude_none=True)
