"""수익 버킷 MongoDB 도큐먼트.

금액은 `$inc` 가 정확하도록 최소 통화 단위 정수(`*_minor`)로 저장한다.
"""

from __future__ import annotations

from common.mongo.types import BaseDocument, from_object_id

from ...models.earnings import Earnings, EarningsBucket
from ...models.money import from_minor_units


def bucket_field(bucket: EarningsBucket) -> str:
    return f"{bucket.value}_minor"


class EarningsDocument(BaseDocument):
    """MongoDB earnings 컬렉션 도큐먼트 모델."""

    payee_code: str
    total_minor: int = 0
    pending_minor: int = 0
    locked_minor: int = 0
    redeemed_minor: int = 0

    def to_domain(self) -> Earnings:
        return Earnings(
            id=from_object_id(self.id),
            payee_code=self.payee_code,
            total=from_minor_units(self.total_minor),
            pending=from_minor_units(self.pending_minor),
            locked=from_minor_units(self.locked_minor),
            redeemed=from_minor_units(self.redeemed_minor),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
