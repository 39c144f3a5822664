"""원장 거래 레포지토리 (append-only)."""

from __future__ import annotations

from typing import Any

from pymongo.database import Database

from common.schemas.pagination import normalize_page

from .documents.transaction_document import LedgerTransactionDocument
from .interfaces import TransactionRepositoryInterface
from ..models.transaction import LedgerTransaction


class TransactionRepository(TransactionRepositoryInterface):
    """ledger_transactions 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["ledger_transactions"]

    def insert(self, tx: LedgerTransaction, session: Any = None) -> LedgerTransaction:
        doc = LedgerTransactionDocument.from_domain(tx)
        result = self._col.insert_one(doc.to_mongo_record(), session=session)
        return tx.model_copy(update={"id": str(result.inserted_id)})

    def find_by_idempotency_key(self, idempotency_key: str) -> LedgerTransaction | None:
        doc = self._col.find_one({"idempotency_key": idempotency_key})
        if not doc:
            return None
        return LedgerTransactionDocument.model_validate(doc).to_domain()

    def list_by_actor(
        self, actor_code: str, page: int, page_size: int
    ) -> tuple[list[LedgerTransaction], int]:
        return self._list({"actor_code": actor_code}, page, page_size)

    def list_by_beneficiary(
        self, beneficiary_code: str, page: int, page_size: int
    ) -> tuple[list[LedgerTransaction], int]:
        return self._list({"beneficiary_code": beneficiary_code}, page, page_size)

    def _list(
        self, query: dict[str, Any], page: int, page_size: int
    ) -> tuple[list[LedgerTransaction], int]:
        page, page_size = normalize_page(page, page_size)
        skip = (page - 1) * page_size

        total = self._col.count_documents(query)
        cursor = self._col.find(
            query,
            sort=[("created_at", -1), ("_id", -1)],
            skip=skip,
            limit=page_size,
        )

        items: list[LedgerTransaction] = []
        for raw in cursor:
            items.append(LedgerTransactionDocument.model_validate(raw).to_domain())

        return items, total
