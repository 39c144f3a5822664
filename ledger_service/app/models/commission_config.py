"""수수료/요금 설정 도메인 모델.

활성 설정은 항상 하나만 존재하며, 관리자 수정은 새 버전을 활성화하고 이전 버전을 비활성화한다.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class CallType(str, Enum):
    AUDIO = "audio"
    VIDEO = "video"


class Feature(str, Enum):
    CHAT = "chat"
    AUDIO_CALL = "audio_call"
    VIDEO_CALL = "video_call"


class CommissionConfig(BaseModel):
    """활성 수수료 설정."""

    id: str | None = None
    responder_commission_percent: Decimal = Decimal("60")
    admin_commission_percent: Decimal = Decimal("40")
    # 코인 1개당 정산 통화 금액
    conversion_rate: Decimal = Decimal("0.1")
    minimum_redeemable: Decimal = Decimal("100.00")
    chat_coins_per_message: int = 3
    audio_call_coins_per_minute: int = 10
    video_call_coins_per_minute: int = 60
    initial_user_coins: int = 10
    chat_enabled: bool = True
    audio_call_enabled: bool = True
    video_call_enabled: bool = True
    # 통화 유형별 수취인 수수료율 재정의 (없으면 responder_commission_percent)
    commission_overrides: dict[CallType, Decimal] = Field(default_factory=dict)
    is_active: bool = True
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("responder_commission_percent", "admin_commission_percent")
    @classmethod
    def _validate_percent(cls, value: Decimal) -> Decimal:
        if value < 0 or value > 100:
            raise ValueError("commission percent must be between 0 and 100")
        return value

    @field_validator("conversion_rate")
    @classmethod
    def _validate_rate(cls, value: Decimal) -> Decimal:
        if value <= 0:
            raise ValueError("conversion_rate must be positive")
        return value

    @field_validator("commission_overrides")
    @classmethod
    def _validate_overrides(cls, value: dict[CallType, Decimal]) -> dict[CallType, Decimal]:
        for percent in value.values():
            if percent < 0 or percent > 100:
                raise ValueError("commission override must be between 0 and 100")
        return value

    @model_validator(mode="after")
    def _validate_split(self) -> "CommissionConfig":
        if self.responder_commission_percent + self.admin_commission_percent != 100:
            raise ValueError("responder and admin commission must sum to 100")
        if self.minimum_redeemable < 0:
            raise ValueError("minimum_redeemable must not be negative")
        for name in (
            "chat_coins_per_message",
            "audio_call_coins_per_minute",
            "video_call_coins_per_minute",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.initial_user_coins < 0:
            raise ValueError("initial_user_coins must not be negative")
        return self

    @classmethod
    def defaults(cls) -> "CommissionConfig":
        return cls()

    def commission_percent_for(self, call_type: CallType | None = None) -> Decimal:
        if call_type is not None and call_type in self.commission_overrides:
            return self.commission_overrides[call_type]
        return self.responder_commission_percent

    def is_enabled(self, feature: Feature) -> bool:
        if feature is Feature.CHAT:
            return self.chat_enabled
        if feature is Feature.AUDIO_CALL:
            return self.audio_call_enabled
        return self.video_call_enabled

    def call_rate_per_minute(self, call_type: CallType) -> int:
        if call_type is CallType.VIDEO:
            return self.video_call_coins_per_minute
        return self.audio_call_coins_per_minute

    def apply_changes(self, changes: dict[str, Any], admin_code: str) -> "CommissionConfig":
        """변경 사항을 반영한 새 버전을 만든다. 검증은 모델 생성 시 다시 수행된다."""

        data = self.model_dump(exclude={"id", "created_at", "updated_at"})
        data.update(changes)
        # 한쪽 비율만 바꾸면 나머지는 합이 100 이 되도록 맞춘다.
        if "responder_commission_percent" in changes and "admin_commission_percent" not in changes:
            data["admin_commission_percent"] = Decimal(100) - Decimal(
                str(changes["responder_commission_percent"])
            )
        elif "admin_commission_percent" in changes and "responder_commission_percent" not in changes:
            data["responder_commission_percent"] = Decimal(100) - Decimal(
                str(changes["admin_commission_percent"])
            )
        data["is_active"] = True
        data["created_by"] = admin_code
        return CommissionConfig.model_validate(data)


def feature_for_call(call_type: CallType) -> Feature:
    return Feature.VIDEO_CALL if call_type is CallType.VIDEO else Feature.AUDIO_CALL
