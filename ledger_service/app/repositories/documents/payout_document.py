from __future__ import annotations

from typing import Any, Optional

from common.mongo.types import (
    BaseDocument,
    MongoDateTime,
    build_document_data_from_domain,
    from_object_id,
)

from ...models.money import from_minor_units, to_minor_units
from ...models.payee import PayeeContact
from ...models.payout import Payout, PayoutStatus


class PayoutDocument(BaseDocument):
    """MongoDB payouts 컬렉션 도큐먼트 모델.

    gateway_response 에는 게이트웨이 원본 응답/에러 본문을 감사용으로 그대로 남긴다.
    """

    payee_code: str
    redemption_id: str | None = None
    amount_minor: int
    destination: str
    contact: dict[str, Any] | None = None
    status: str
    transfer_id: str
    gateway_reference_id: str | None = None
    gateway_response: dict[str, Any] | None = None
    last_error: str | None = None
    attempts: int = 0
    processed_by: str | None = None
    rejection_reason: str | None = None
    completed_at: Optional[MongoDateTime] = None

    @classmethod
    def from_domain(cls, payout: Payout) -> "PayoutDocument":
        data = build_document_data_from_domain(
            payout,
            status=payout.status.value,
            amount_minor=to_minor_units(payout.amount),
        )
        data.pop("amount", None)
        return cls.model_validate(data)

    def to_domain(self) -> Payout:
        return Payout(
            id=str(from_object_id(self.id)),
            payee_code=self.payee_code,
            redemption_id=self.redemption_id,
            amount=from_minor_units(self.amount_minor),
            destination=self.destination,
            contact=PayeeContact.model_validate(self.contact) if self.contact else None,
            status=PayoutStatus(self.status),
            transfer_id=self.transfer_id,
            gateway_reference_id=self.gateway_reference_id,
            gateway_response=self.gateway_response,
            last_error=self.last_error,
            attempts=self.attempts,
            processed_by=self.processed_by,
            rejection_reason=self.rejection_reason,
            completed_at=self.completed_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
