"""수수료 설정 레포지토리.

활성 설정의 유일성은 `is_active: true` 부분 유니크 인덱스로 보장한다.
"""

from __future__ import annotations

from typing import Any

from pymongo.database import Database

from common.mongo.types import parse_object_id
from common.types.datetime import utc_now

from .documents.commission_config_document import CommissionConfigDocument
from .interfaces import CommissionConfigRepositoryInterface
from ..models.commission_config import CommissionConfig


class CommissionConfigRepository(CommissionConfigRepositoryInterface):
    """commission_configs 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["commission_configs"]

    def find_active(self) -> CommissionConfig | None:
        doc = self._col.find_one({"is_active": True})
        if not doc:
            return None
        return CommissionConfigDocument.model_validate(doc).to_domain()

    def insert_active(
        self, config: CommissionConfig, session: Any = None
    ) -> CommissionConfig:
        now = utc_now()
        stored = config.model_copy(
            update={"id": None, "is_active": True, "created_at": now, "updated_at": now}
        )
        doc = CommissionConfigDocument.from_domain(stored)
        result = self._col.insert_one(doc.to_mongo_record(), session=session)
        return stored.model_copy(update={"id": str(result.inserted_id)})

    def deactivate(self, config_id: str, session: Any = None) -> bool:
        oid = parse_object_id(config_id)
        if oid is None:
            return False
        result = self._col.update_one(
            {"_id": oid, "is_active": True},
            {"$set": {"is_active": False, "updated_at": utc_now()}},
            session=session,
        )
        return result.modified_count == 1

    def list_history(self, limit: int) -> list[CommissionConfig]:
        cursor = self._col.find({}, sort=[("created_at", -1)], limit=limit)
        return [CommissionConfigDocument.model_validate(raw).to_domain() for raw in cursor]
