from __future__ import annotations

import os
import threading
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

from common.eventbus.kafka import close_kafka_event_bus
from common.logger import setup_logger
from common.middleware.request_trace import RequestTraceMiddleware
from common.mongo.client import close_client

from .api.errors import register_exception_handlers
from .api.health import router as health_router
from .api.v1 import api_router
from .dependencies import close_gateway
from .event_handlers import run_payout_consumer
from .scheduler.reconcile_scheduler import (
    start_reconcile_scheduler,
    stop_reconcile_scheduler,
)


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - framework hook
    """애플리케이션 생명주기 동안 백그라운드 작업을 관리한다.

    - payout.requested 를 소비하는 Kafka 컨슈머 스레드
    - 지급 대사 스케줄러 스레드
    """

    payout_stop_flag = [False]
    payout_thread = threading.Thread(
        target=run_payout_consumer,
        args=(payout_stop_flag,),
        name="payout-consumer",
        daemon=True,
    )
    payout_thread.start()
    start_reconcile_scheduler()

    try:
        yield
    finally:
        payout_stop_flag[0] = True
        payout_thread.join(timeout=10.0)
        stop_reconcile_scheduler()
        close_gateway()
        close_kafka_event_bus()
        close_client()


def create_app() -> FastAPI:
    # .env 는 개발 편의용. 이미 설정된 환경 변수를 덮어쓰지 않는다.
    load_dotenv()
    setup_logger(name="ledger-service")
    app = FastAPI(
        title="Coin Ledger Service",
        version="0.1.0",
        lifespan=lifespan,
    )

    # 공통 Request/Span ID 로그 미들웨어
    app.add_middleware(RequestTraceMiddleware)
    register_exception_handlers(app)

    app.include_router(health_router, tags=["health"])
    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()


def main() -> None:
    """명령행에서 실행할 수 있도록 uvicorn 런처를 제공한다."""

    import uvicorn

    port = int(os.getenv("LEDGER_SERVICE_PORT", "8004"))
    uvicorn.run(
        "ledger_service.app.main:app",
        host="0.0.0.0",
        port=port,
        reload=False,
        access_log=False,
    )


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()
