from __future__ import annotations

import logging
import threading
from typing import Optional, cast

from pymongo import ASCENDING, DESCENDING, IndexModel, MongoClient
from pymongo.database import Database

from .config import get_mongo_db_name, get_mongo_uri


logger = logging.getLogger(__name__)


_client: Optional[MongoClient] = None
_db: Optional[Database] = None
_lock = threading.Lock()


def get_client() -> MongoClient:
    """전역 MongoClient 싱글톤을 반환한다.

    - MONGO_URI 에서 URI 를 읽어온다.
    - ping 으로 연결을 검증한다.
    - URI 에 기본 데이터베이스가 포함되어 있지 않으면 에러를 발생시킨다.
    - 원장 컬렉션에 필요한 인덱스를 한 번만 생성한다.
    """

    global _client, _db

    if _client is not None:
        return _client

    with _lock:
        if _client is not None:
            return _client

        uri = get_mongo_uri()
        # tz_aware: 저장된 datetime 을 UTC aware 로 돌려받는다.
        client: MongoClient = MongoClient(uri, tz_aware=True)

        try:
            client.admin.command("ping")
        except Exception as exc:  # noqa: BLE001
            client.close()
            raise RuntimeError(f"failed to connect to MongoDB: {exc}") from exc

        # 사용할 DB 이름 결정: MONGO_DB_NAME 우선, 없으면 URI의 기본 DB 사용
        db_name = get_mongo_db_name()
        try:
            if db_name:
                db = client[db_name]
            else:
                db = client.get_default_database()
        except Exception as exc:  # noqa: BLE001
            client.close()
            raise RuntimeError(
                "MongoDB database name must be specified via MONGO_DB_NAME or in MONGO_URI (mongodb://.../db_name)",
            ) from exc

        _client = client
        _db = db

        try:
            _ensure_indexes(_db)
        except Exception as exc:  # noqa: BLE001
            # 부분 유니크 인덱스가 없으면 원장 불변식이 깨지므로 치명적 오류로 간주한다.
            logger.error("failed to ensure MongoDB indexes: %s", exc)
            raise

        safe_db = cast(Database, _db)
        logger.info("MongoDB connected and indexes ensured (db=%s)", safe_db.name)
        return _client


def get_database() -> Database:
    """전역 기본 Database 객체를 반환한다."""

    global _db

    if _db is None:
        get_client()
    assert (
        _db is not None
    )  # get_client 에서 _db 를 초기화하지 못했다면 예외가 이미 발생했어야 한다.
    return _db


def close_client() -> None:
    """애플리케이션 종료 시 커넥션 풀을 정리한다."""

    global _client, _db

    with _lock:
        if _client is not None:
            _client.close()
        _client = None
        _db = None


def _ensure_indexes(db: Database) -> None:
    """원장 컬렉션의 필수 인덱스를 생성한다.

    동시성 규칙 중 일부(활성 설정 1개, 지급 요청 1건 등)는 애플리케이션이 아닌
    부분 유니크 인덱스로 보장한다. 중복 생성해도 MongoDB 가 처리하므로 idempotent 하다.
    """

    db["wallets"].create_indexes(
        [IndexModel([("user_code", ASCENDING)], name="uniq_user_code", unique=True)]
    )

    db["earnings"].create_indexes(
        [IndexModel([("payee_code", ASCENDING)], name="uniq_payee_code", unique=True)]
    )

    db["ledger_transactions"].create_indexes(
        [
            IndexModel(
                [("actor_code", ASCENDING), ("created_at", DESCENDING)],
                name="idx_actor_created_at",
            ),
            IndexModel(
                [("beneficiary_code", ASCENDING), ("created_at", DESCENDING)],
                name="idx_beneficiary_created_at",
            ),
            IndexModel([("kind", ASCENDING)], name="idx_kind"),
            # 재시도 요청 식별용 멱등 키 (키가 있는 문서에만 적용)
            IndexModel(
                [("idempotency_key", ASCENDING)],
                name="uniq_idempotency_key",
                unique=True,
                partialFilterExpression={"idempotency_key": {"$type": "string"}},
            ),
        ]
    )

    db["redemptions"].create_indexes(
        [
            IndexModel(
                [("payee_code", ASCENDING), ("created_at", DESCENDING)],
                name="idx_payee_created_at",
            ),
            IndexModel(
                [("status", ASCENDING), ("created_at", DESCENDING)],
                name="idx_status_created_at",
            ),
            # 수취인당 진행 중인 환급 요청은 1건
            IndexModel(
                [("payee_code", ASCENDING)],
                name="uniq_outstanding_redemption",
                unique=True,
                partialFilterExpression={
                    "status": {"$in": ["pending", "in_progress"]}
                },
            ),
        ]
    )

    db["payouts"].create_indexes(
        [
            IndexModel(
                [("payee_code", ASCENDING), ("created_at", DESCENDING)],
                name="idx_payee_created_at",
            ),
            IndexModel(
                [("status", ASCENDING), ("updated_at", ASCENDING)],
                name="idx_status_updated_at",
            ),
            IndexModel([("transfer_id", ASCENDING)], name="uniq_transfer_id", unique=True),
            IndexModel([("redemption_id", ASCENDING)], name="idx_redemption_id"),
            # 수취인당 진행 중인 지급은 1건
            IndexModel(
                [("payee_code", ASCENDING)],
                name="uniq_outstanding_payout",
                unique=True,
                partialFilterExpression={
                    "status": {"$in": ["pending", "processing"]}
                },
            ),
        ]
    )

    db["commission_configs"].create_indexes(
        [
            IndexModel(
                [("is_active", ASCENDING)],
                name="uniq_active_config",
                unique=True,
                partialFilterExpression={"is_active": True},
            ),
            IndexModel([("created_at", DESCENDING)], name="idx_created_at"),
        ]
    )
