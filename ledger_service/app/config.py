from __future__ import annotations

import os
from dataclasses import dataclass


LEDGER_SERVICE_PORT = "LEDGER_SERVICE_PORT"
LEDGER_CONFIG_CACHE_TTL_SECONDS = "LEDGER_CONFIG_CACHE_TTL_SECONDS"
LEDGER_RECONCILE_INTERVAL_SECONDS = "LEDGER_RECONCILE_INTERVAL_SECONDS"
LEDGER_RECONCILE_STALE_SECONDS = "LEDGER_RECONCILE_STALE_SECONDS"

GATEWAY_BASE_URL = "GATEWAY_BASE_URL"
GATEWAY_CLIENT_ID = "GATEWAY_CLIENT_ID"
GATEWAY_CLIENT_SECRET = "GATEWAY_CLIENT_SECRET"
GATEWAY_TIMEOUT_SECONDS = "GATEWAY_TIMEOUT_SECONDS"
GATEWAY_TRANSFER_MODE = "GATEWAY_TRANSFER_MODE"


@dataclass(slots=True)
class GatewayConfig:
    """송금 게이트웨이 접속 설정."""

    base_url: str
    client_id: str
    client_secret: str
    # 송금 요청 타임아웃. 조회성 호출은 이 값의 절반을 쓴다.
    timeout_seconds: float = 30.0
    transfer_mode: str = "upi"


@dataclass(slots=True)
class ReconcileConfig:
    """지급 대사 스케줄러 설정."""

    interval_seconds: int = 300
    stale_seconds: int = 600
    batch_size: int = 50


@dataclass(slots=True)
class AppConfig:
    """ledger-service 전체 설정."""

    port: int
    config_cache_ttl_seconds: float
    gateway: GatewayConfig
    reconcile: ReconcileConfig


def _read_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer if set, got: {raw!r}") from exc


def _read_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number if set, got: {raw!r}") from exc


def load_gateway_config() -> GatewayConfig:
    base_url = os.getenv(GATEWAY_BASE_URL)
    if not base_url:
        raise RuntimeError(
            f"{GATEWAY_BASE_URL} environment variable is required for ledger-service"
        )

    client_id = os.getenv(GATEWAY_CLIENT_ID)
    client_secret = os.getenv(GATEWAY_CLIENT_SECRET)
    if not client_id or not client_secret:
        raise RuntimeError(
            f"{GATEWAY_CLIENT_ID} and {GATEWAY_CLIENT_SECRET} environment variables are required",
        )

    return GatewayConfig(
        base_url=base_url.rstrip("/"),
        client_id=client_id,
        client_secret=client_secret,
        timeout_seconds=_read_float(GATEWAY_TIMEOUT_SECONDS, 30.0),
        transfer_mode=os.getenv(GATEWAY_TRANSFER_MODE) or "upi",
    )


def load_reconcile_config() -> ReconcileConfig:
    return ReconcileConfig(
        interval_seconds=_read_int(LEDGER_RECONCILE_INTERVAL_SECONDS, 300),
        stale_seconds=_read_int(LEDGER_RECONCILE_STALE_SECONDS, 600),
    )


def load_config_cache_ttl_seconds() -> float:
    return _read_float(LEDGER_CONFIG_CACHE_TTL_SECONDS, 60.0)


def load_config() -> AppConfig:
    return AppConfig(
        port=_read_int(LEDGER_SERVICE_PORT, 8004),
        config_cache_ttl_seconds=load_config_cache_ttl_seconds(),
        gateway=load_gateway_config(),
        reconcile=load_reconcile_config(),
    )
