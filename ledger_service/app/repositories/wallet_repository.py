"""사용자 코인 지갑 레포지토리.

차감은 `coin_balance >= coins` 조건을 건 단일 find_one_and_update 로 수행해
동시 요청 간 경쟁(read-then-write)을 없앤다.
"""

from __future__ import annotations

from typing import Any

from pymongo import ReturnDocument
from pymongo.database import Database

from common.types.datetime import utc_now

from .documents.wallet_document import WalletDocument
from .interfaces import WalletRepositoryInterface
from ..models.wallet import Wallet


class WalletRepository(WalletRepositoryInterface):
    """wallets 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["wallets"]

    def get(self, user_code: str, session: Any = None) -> Wallet | None:
        doc = self._col.find_one({"user_code": user_code}, session=session)
        if not doc:
            return None
        return WalletDocument.model_validate(doc).to_domain()

    def try_debit(self, user_code: str, coins: int, session: Any = None) -> Wallet | None:
        doc = self._col.find_one_and_update(
            {"user_code": user_code, "coin_balance": {"$gte": coins}},
            {
                "$inc": {"coin_balance": -coins},
                "$set": {"updated_at": utc_now()},
            },
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if not doc:
            return None  # 잔액 부족 또는 지갑 없음
        return WalletDocument.model_validate(doc).to_domain()

    def credit(self, user_code: str, coins: int, session: Any = None) -> Wallet:
        now = utc_now()
        doc = self._col.find_one_and_update(
            {"user_code": user_code},
            {
                "$inc": {"coin_balance": coins},
                "$set": {"updated_at": now},
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        return WalletDocument.model_validate(doc).to_domain()
