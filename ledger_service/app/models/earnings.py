"""응답자(수취인) 수익 버킷 도메인 모델.

모든 버킷은 정산 통화 단위이며 `pending + locked + redeemed <= total` 을 항상 만족한다.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel

from .money import ZERO


class EarningsBucket(str, Enum):
    PENDING = "pending"
    LOCKED = "locked"
    REDEEMED = "redeemed"


class Earnings(BaseModel):
    id: str | None = None
    payee_code: str
    total: Decimal = ZERO
    pending: Decimal = ZERO
    locked: Decimal = ZERO
    redeemed: Decimal = ZERO
    created_at: datetime
    updated_at: datetime

    def bucket(self, bucket: EarningsBucket) -> Decimal:
        return getattr(self, bucket.value)


class EarningsSummary(BaseModel):
    """수익 조회 응답용 집계."""

    payee_code: str
    total: Decimal
    pending: Decimal
    locked: Decimal
    redeemed: Decimal
    minimum_redeemable: Decimal
    can_redeem: bool
