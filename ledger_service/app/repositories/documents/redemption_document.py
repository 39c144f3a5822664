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
from ...models.redemption import Redemption, RedemptionStatus


class RedemptionDocument(BaseDocument):
    """MongoDB redemptions 컬렉션 도큐먼트 모델."""

    payee_code: str
    amount_minor: int
    destination: str
    contact: dict[str, Any] | None = None
    status: str
    admin_notes: str | None = None
    processed_by: str | None = None
    processed_at: Optional[MongoDateTime] = None
    external_transaction_id: str | None = None
    rejection_reason: str | None = None
    payout_id: str | None = None

    @classmethod
    def from_domain(cls, redemption: Redemption) -> "RedemptionDocument":
        data = build_document_data_from_domain(
            redemption,
            status=redemption.status.value,
            amount_minor=to_minor_units(redemption.amount),
        )
        data.pop("amount", None)
        return cls.model_validate(data)

    def to_domain(self) -> Redemption:
        return Redemption(
            id=from_object_id(self.id),
            payee_code=self.payee_code,
            amount=from_minor_units(self.amount_minor),
            destination=self.destination,
            contact=PayeeContact.model_validate(self.contact) if self.contact else None,
            status=RedemptionStatus(self.status),
            admin_notes=self.admin_notes,
            processed_by=self.processed_by,
            processed_at=self.processed_at,
            external_transaction_id=self.external_transaction_id,
            rejection_reason=self.rejection_reason,
            payout_id=self.payout_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
