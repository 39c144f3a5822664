"""서비스 조립.

FastAPI 라우터는 `Depends(get_*_service)` 로, 컨슈머/스케줄러 스레드는 `build_*` 함수로
같은 방식의 서비스 그래프를 얻는다. 설정 캐시와 게이트웨이 클라이언트(토큰 캐시)는
프로세스 전역 싱글톤이다.
"""

from __future__ import annotations

import threading

from fastapi import Depends
from pymongo.database import Database

from common.eventbus.kafka import get_kafka_event_bus
from common.mongo.client import get_client, get_database
from common.mongo.transaction import MongoTransactionRunner

from .config import load_config_cache_ttl_seconds, load_gateway_config
from .gateway.client import TransferGatewayClient
from .repositories.commission_config_repository import CommissionConfigRepository
from .repositories.earnings_repository import EarningsRepository
from .repositories.payout_repository import PayoutRepository
from .repositories.redemption_repository import RedemptionRepository
from .repositories.transaction_repository import TransactionRepository
from .repositories.wallet_repository import WalletRepository
from .services.config_store import ConfigurationStore
from .services.event_publisher import LedgerEventPublisher
from .services.funds_reservation import FundsReservation
from .services.ledger_service import LedgerService
from .services.payout_service import PayoutOrchestrator
from .services.redemption_service import RedemptionService


_lock = threading.Lock()
_config_store: ConfigurationStore | None = None
_gateway: TransferGatewayClient | None = None


def get_config_store() -> ConfigurationStore:
    global _config_store

    if _config_store is not None:
        return _config_store

    with _lock:
        if _config_store is None:
            _config_store = ConfigurationStore(
                CommissionConfigRepository(get_database()),
                MongoTransactionRunner(get_client()),
                ttl_seconds=load_config_cache_ttl_seconds(),
            )
        return _config_store


def get_gateway() -> TransferGatewayClient:
    global _gateway

    if _gateway is not None:
        return _gateway

    with _lock:
        if _gateway is None:
            _gateway = TransferGatewayClient(load_gateway_config())
        return _gateway


def close_gateway() -> None:
    global _gateway

    with _lock:
        if _gateway is not None:
            _gateway.close()
        _gateway = None


def get_event_publisher() -> LedgerEventPublisher:
    return LedgerEventPublisher(get_kafka_event_bus())


def build_ledger_service(db: Database) -> LedgerService:
    return LedgerService(
        WalletRepository(db),
        EarningsRepository(db),
        TransactionRepository(db),
        get_config_store(),
        MongoTransactionRunner(get_client()),
        get_event_publisher(),
    )


def build_redemption_service(db: Database) -> RedemptionService:
    earnings_repo = EarningsRepository(db)
    return RedemptionService(
        RedemptionRepository(db),
        PayoutRepository(db),
        earnings_repo,
        TransactionRepository(db),
        FundsReservation(earnings_repo),
        get_config_store(),
        MongoTransactionRunner(get_client()),
        get_event_publisher(),
    )


def build_payout_orchestrator(db: Database) -> PayoutOrchestrator:
    earnings_repo = EarningsRepository(db)
    return PayoutOrchestrator(
        PayoutRepository(db),
        RedemptionRepository(db),
        earnings_repo,
        TransactionRepository(db),
        FundsReservation(earnings_repo),
        get_gateway(),
        get_config_store(),
        MongoTransactionRunner(get_client()),
        get_event_publisher(),
    )


# FastAPI DI ------------------------------------------------------------------
def get_ledger_service(db: Database = Depends(get_database)) -> LedgerService:
    """FastAPI DI용 LedgerService 팩토리."""
    return build_ledger_service(db)


def get_redemption_service(db: Database = Depends(get_database)) -> RedemptionService:
    """FastAPI DI용 RedemptionService 팩토리."""
    return build_redemption_service(db)


def get_payout_orchestrator(db: Database = Depends(get_database)) -> PayoutOrchestrator:
    """FastAPI DI용 PayoutOrchestrator 팩토리."""
    return build_payout_orchestrator(db)
