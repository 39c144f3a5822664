"""수수료 설정 MongoDB 도큐먼트.

비율/환율은 정밀도 유지를 위해 문자열로, 최소 환급액은 최소 통화 단위 정수로 저장한다.
"""

from __future__ import annotations

from decimal import Decimal

from common.mongo.types import BaseDocument, from_object_id

from ...models.commission_config import CallType, CommissionConfig
from ...models.money import from_minor_units, to_minor_units


class CommissionConfigDocument(BaseDocument):
    """MongoDB commission_configs 컬렉션 도큐먼트 모델."""

    responder_commission_percent: str
    admin_commission_percent: str
    conversion_rate: str
    minimum_redeemable_minor: int
    chat_coins_per_message: int
    audio_call_coins_per_minute: int
    video_call_coins_per_minute: int
    initial_user_coins: int
    chat_enabled: bool = True
    audio_call_enabled: bool = True
    video_call_enabled: bool = True
    commission_overrides: dict[str, str] = {}
    is_active: bool
    created_by: str | None = None

    @classmethod
    def from_domain(cls, config: CommissionConfig) -> "CommissionConfigDocument":
        return cls(
            _id=config.id,
            responder_commission_percent=str(config.responder_commission_percent),
            admin_commission_percent=str(config.admin_commission_percent),
            conversion_rate=str(config.conversion_rate),
            minimum_redeemable_minor=to_minor_units(config.minimum_redeemable),
            chat_coins_per_message=config.chat_coins_per_message,
            audio_call_coins_per_minute=config.audio_call_coins_per_minute,
            video_call_coins_per_minute=config.video_call_coins_per_minute,
            initial_user_coins=config.initial_user_coins,
            chat_enabled=config.chat_enabled,
            audio_call_enabled=config.audio_call_enabled,
            video_call_enabled=config.video_call_enabled,
            commission_overrides={
                call_type.value: str(percent)
                for call_type, percent in config.commission_overrides.items()
            },
            is_active=config.is_active,
            created_by=config.created_by,
            created_at=config.created_at,
            updated_at=config.updated_at,
        )

    def to_domain(self) -> CommissionConfig:
        return CommissionConfig(
            id=from_object_id(self.id),
            responder_commission_percent=Decimal(self.responder_commission_percent),
            admin_commission_percent=Decimal(self.admin_commission_percent),
            conversion_rate=Decimal(self.conversion_rate),
            minimum_redeemable=from_minor_units(self.minimum_redeemable_minor),
            chat_coins_per_message=self.chat_coins_per_message,
            audio_call_coins_per_minute=self.audio_call_coins_per_minute,
            video_call_coins_per_minute=self.video_call_coins_per_minute,
            initial_user_coins=self.initial_user_coins,
            chat_enabled=self.chat_enabled,
            audio_call_enabled=self.audio_call_enabled,
            video_call_enabled=self.video_call_enabled,
            commission_overrides={
                CallType(call_type): Decimal(percent)
                for call_type, percent in self.commission_overrides.items()
            },
            is_active=self.is_active,
            created_by=self.created_by,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
