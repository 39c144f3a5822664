"""지급 레코드 레포지토리."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence

from pymongo import ReturnDocument
from pymongo.database import Database

from common.mongo.types import parse_object_id
from common.schemas.pagination import normalize_page
from common.types.datetime import utc_now

from .documents.payout_document import PayoutDocument
from .interfaces import PayoutRepositoryInterface
from ..models.payout import Payout, PayoutStatus


class PayoutRepository(PayoutRepositoryInterface):
    """payouts 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["payouts"]

    def insert(self, payout: Payout, session: Any = None) -> Payout:
        doc = PayoutDocument.from_domain(payout)
        self._col.insert_one(doc.to_mongo_record(), session=session)
        return payout

    def get(self, payout_id: str, session: Any = None) -> Payout | None:
        oid = parse_object_id(payout_id)
        if oid is None:
            return None
        doc = self._col.find_one({"_id": oid}, session=session)
        if not doc:
            return None
        return PayoutDocument.model_validate(doc).to_domain()

    def find_by_transfer_id(self, transfer_id: str) -> Payout | None:
        doc = self._col.find_one({"transfer_id": transfer_id})
        if not doc:
            return None
        return PayoutDocument.model_validate(doc).to_domain()

    def find_latest_for_redemption(
        self, redemption_id: str, session: Any = None
    ) -> Payout | None:
        doc = self._col.find_one(
            {"redemption_id": redemption_id},
            sort=[("created_at", -1), ("_id", -1)],
            session=session,
        )
        if not doc:
            return None
        return PayoutDocument.model_validate(doc).to_domain()

    def transition(
        self,
        payout_id: str,
        expected: Sequence[PayoutStatus],
        new_status: PayoutStatus,
        fields: dict[str, Any] | None = None,
        session: Any = None,
        increment_attempts: bool = False,
    ) -> Payout | None:
        oid = parse_object_id(payout_id)
        if oid is None:
            return None

        update: dict[str, Any] = {"$set": dict(fields or {})}
        update["$set"]["status"] = new_status.value
        update["$set"]["updated_at"] = utc_now()
        if increment_attempts:
            update["$inc"] = {"attempts": 1}

        doc = self._col.find_one_and_update(
            {"_id": oid, "status": {"$in": [s.value for s in expected]}},
            update,
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if not doc:
            return None
        return PayoutDocument.model_validate(doc).to_domain()

    def list_stale(
        self, statuses: Sequence[PayoutStatus], older_than: datetime, limit: int
    ) -> list[Payout]:
        cursor = self._col.find(
            {
                "status": {"$in": [s.value for s in statuses]},
                "updated_at": {"$lt": older_than},
            },
            sort=[("updated_at", 1)],
            limit=limit,
        )
        return [PayoutDocument.model_validate(raw).to_domain() for raw in cursor]

    def list_by_payee(
        self, payee_code: str, page: int, page_size: int
    ) -> tuple[list[Payout], int]:
        return self._list({"payee_code": payee_code}, page, page_size)

    def list_all(
        self, status: PayoutStatus | None, page: int, page_size: int
    ) -> tuple[list[Payout], int]:
        query: dict[str, Any] = {}
        if status is not None:
            query["status"] = status.value
        return self._list(query, page, page_size)

    def _list(
        self, query: dict[str, Any], page: int, page_size: int
    ) -> tuple[list[Payout], int]:
        page, page_size = normalize_page(page, page_size)
        skip = (page - 1) * page_size

        total = self._col.count_documents(query)
        cursor = self._col.find(
            query,
            sort=[("created_at", -1), ("_id", -1)],
            skip=skip,
            limit=page_size,
        )
        items = [PayoutDocument.model_validate(raw).to_domain() for raw in cursor]
        return items, total
