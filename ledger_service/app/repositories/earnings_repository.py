"""응답자 수익 버킷 레포지토리.

버킷 간 이동은 원천 버킷 잔액 조건을 건 단일 `$inc` 로 처리해 합계가 보존되도록 한다.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from pymongo import ReturnDocument
from pymongo.database import Database

from common.types.datetime import utc_now

from .documents.earnings_document import EarningsDocument, bucket_field
from .interfaces import EarningsRepositoryInterface
from ..models.earnings import Earnings, EarningsBucket
from ..models.money import to_minor_units


class EarningsRepository(EarningsRepositoryInterface):
    """earnings 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["earnings"]

    def get(self, payee_code: str, session: Any = None) -> Earnings | None:
        doc = self._col.find_one({"payee_code": payee_code}, session=session)
        if not doc:
            return None
        return EarningsDocument.model_validate(doc).to_domain()

    def add_pending(
        self, payee_code: str, amount: Decimal, session: Any = None
    ) -> Earnings:
        minor = to_minor_units(amount)
        now = utc_now()
        doc = self._col.find_one_and_update(
            {"payee_code": payee_code},
            {
                "$inc": {"total_minor": minor, "pending_minor": minor},
                "$set": {"updated_at": now},
                "$setOnInsert": {
                    "created_at": now,
                    "locked_minor": 0,
                    "redeemed_minor": 0,
                },
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        return EarningsDocument.model_validate(doc).to_domain()

    def move(
        self,
        payee_code: str,
        source: EarningsBucket,
        target: EarningsBucket,
        amount: Decimal,
        session: Any = None,
    ) -> Earnings | None:
        minor = to_minor_units(amount)
        source_field = bucket_field(source)
        doc = self._col.find_one_and_update(
            {"payee_code": payee_code, source_field: {"$gte": minor}},
            {
                "$inc": {source_field: -minor, bucket_field(target): minor},
                "$set": {"updated_at": utc_now()},
            },
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if not doc:
            return None
        return EarningsDocument.model_validate(doc).to_domain()
