from __future__ import annotations

from typing import Any

from common.mongo.types import (
    AppendOnlyDocument,
    build_document_data_from_domain,
    from_object_id,
)

from ...models.money import from_minor_units, to_minor_units
from ...models.transaction import LedgerTransaction, TransactionKind


class LedgerTransactionDocument(AppendOnlyDocument):
    """MongoDB ledger_transactions 컬렉션 도큐먼트 모델 (write-once)."""

    actor_code: str
    beneficiary_code: str | None = None
    kind: str
    coins: int
    currency_amount_minor: int = 0
    balance_after: int | None = None
    idempotency_key: str | None = None
    metadata: dict[str, Any] = {}

    @classmethod
    def from_domain(cls, tx: LedgerTransaction) -> "LedgerTransactionDocument":
        data = build_document_data_from_domain(
            tx,
            kind=tx.kind.value,
            currency_amount_minor=to_minor_units(tx.currency_amount),
        )
        data.pop("currency_amount", None)
        return cls.model_validate(data)

    def to_domain(self) -> LedgerTransaction:
        return LedgerTransaction(
            id=from_object_id(self.id),
            actor_code=self.actor_code,
            beneficiary_code=self.beneficiary_code,
            kind=TransactionKind(self.kind),
            coins=self.coins,
            currency_amount=from_minor_units(self.currency_amount_minor),
            balance_after=self.balance_after,
            idempotency_key=self.idempotency_key,
            metadata=dict(self.metadata),
            created_at=self.created_at,
        )
