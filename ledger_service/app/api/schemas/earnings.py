from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel

from ...models.earnings import EarningsSummary


class EarningsResponse(BaseModel):
    payee_code: str
    total: Decimal
    pending: Decimal
    locked: Decimal
    redeemed: Decimal
    minimum_redeemable: Decimal
    can_redeem: bool

    @classmethod
    def from_domain(cls, summary: EarningsSummary) -> "EarningsResponse":
        return cls(**summary.model_dump())
