"""환급 요청 레포지토리.

상태 변경은 현재 상태를 조건으로 거는 compare-and-set 으로만 수행한다.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from pymongo import ReturnDocument
from pymongo.database import Database

from common.mongo.types import parse_object_id
from common.schemas.pagination import normalize_page
from common.types.datetime import utc_now

from .documents.redemption_document import RedemptionDocument
from .interfaces import RedemptionRepositoryInterface
from ..models.money import from_minor_units
from ..models.redemption import (
    OUTSTANDING_REDEMPTION_STATUSES,
    Redemption,
    RedemptionStats,
    RedemptionStatus,
)


class RedemptionRepository(RedemptionRepositoryInterface):
    """redemptions 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["redemptions"]

    def insert(self, redemption: Redemption, session: Any = None) -> Redemption:
        doc = RedemptionDocument.from_domain(redemption)
        result = self._col.insert_one(doc.to_mongo_record(), session=session)
        return redemption.model_copy(update={"id": str(result.inserted_id)})

    def get(self, redemption_id: str, session: Any = None) -> Redemption | None:
        oid = parse_object_id(redemption_id)
        if oid is None:
            return None
        doc = self._col.find_one({"_id": oid}, session=session)
        if not doc:
            return None
        return RedemptionDocument.model_validate(doc).to_domain()

    def find_outstanding(self, payee_code: str, session: Any = None) -> Redemption | None:
        doc = self._col.find_one(
            {
                "payee_code": payee_code,
                "status": {"$in": [s.value for s in OUTSTANDING_REDEMPTION_STATUSES]},
            },
            session=session,
        )
        if not doc:
            return None
        return RedemptionDocument.model_validate(doc).to_domain()

    def transition(
        self,
        redemption_id: str,
        expected: RedemptionStatus,
        new_status: RedemptionStatus,
        fields: dict[str, Any] | None = None,
        session: Any = None,
        expected_payout_id: str | None = None,
    ) -> Redemption | None:
        oid = parse_object_id(redemption_id)
        if oid is None:
            return None

        update: dict[str, Any] = dict(fields or {})
        update["status"] = new_status.value
        update["updated_at"] = utc_now()

        query: dict[str, Any] = {"_id": oid, "status": expected.value}
        if expected_payout_id is not None:
            query["payout_id"] = expected_payout_id

        doc = self._col.find_one_and_update(
            query,
            {"$set": update},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if not doc:
            return None
        return RedemptionDocument.model_validate(doc).to_domain()

    def attach_payout(
        self,
        redemption_id: str,
        payout_id: str,
        expected_payout_id: str | None,
        session: Any = None,
    ) -> Redemption | None:
        oid = parse_object_id(redemption_id)
        if oid is None:
            return None
        doc = self._col.find_one_and_update(
            {
                "_id": oid,
                "status": RedemptionStatus.APPROVED.value,
                "payout_id": expected_payout_id,
            },
            {"$set": {"payout_id": payout_id, "updated_at": utc_now()}},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if not doc:
            return None
        return RedemptionDocument.model_validate(doc).to_domain()

    def list_by_payee(
        self, payee_code: str, page: int, page_size: int
    ) -> tuple[list[Redemption], int]:
        return self._list({"payee_code": payee_code}, page, page_size)

    def list_all(
        self, status: RedemptionStatus | None, page: int, page_size: int
    ) -> tuple[list[Redemption], int]:
        query: dict[str, Any] = {}
        if status is not None:
            query["status"] = status.value
        return self._list(query, page, page_size)

    def stats(self) -> list[RedemptionStats]:
        """상태별 건수와 금액 합계."""
        pipeline = [
            {
                "$group": {
                    "_id": "$status",
                    "count": {"$sum": 1},
                    "amount_minor": {"$sum": "$amount_minor"},
                }
            },
        ]

        by_status: dict[str, RedemptionStats] = {}
        for doc in self._col.aggregate(pipeline):
            by_status[doc["_id"]] = RedemptionStats(
                status=RedemptionStatus(doc["_id"]),
                count=doc["count"],
                amount=from_minor_units(doc["amount_minor"]),
            )

        # 집계되지 않은 상태는 0으로 채운다
        return [
            by_status.get(
                status.value,
                RedemptionStats(status=status, count=0, amount=Decimal("0.00")),
            )
            for status in RedemptionStatus
        ]

    def _list(
        self, query: dict[str, Any], page: int, page_size: int
    ) -> tuple[list[Redemption], int]:
        page, page_size = normalize_page(page, page_size)
        skip = (page - 1) * page_size

        total = self._col.count_documents(query)
        cursor = self._col.find(
            query,
            sort=[("created_at", -1), ("_id", -1)],
            skip=skip,
            limit=page_size,
        )
        items = [RedemptionDocument.model_validate(raw).to_domain() for raw in cursor]
        return items, total
