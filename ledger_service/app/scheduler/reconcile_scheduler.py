"""지급 대사 스케줄러.

processing 에 머문 지급은 게이트웨이에 결과를 조회해 확정하고, pending 에 머문 지급은
유실된 `payout.requested` 대신 처리를 다시 시작한다.
"""

from __future__ import annotations

import logging
import threading

from common.mongo.client import get_database

from ..config import ReconcileConfig, load_reconcile_config
from ..dependencies import build_payout_orchestrator
from ..services.payout_service import PayoutOrchestrator


logger = logging.getLogger(__name__)


_RECONCILE_THREAD: threading.Thread | None = None
_RECONCILE_STOP_EVENT: threading.Event | None = None


def run_reconcile_once(orchestrator: PayoutOrchestrator, cfg: ReconcileConfig) -> int:
    try:
        return orchestrator.reconcile_stale(
            older_than_seconds=cfg.stale_seconds, limit=cfg.batch_size
        )
    except Exception:  # noqa: BLE001
        logger.exception("payout reconciliation run failed")
        return 0


def _run_scheduler_loop(
    stop_event: threading.Event,
    cfg: ReconcileConfig,
    orchestrator: PayoutOrchestrator | None,
) -> None:
    logger.info(
        "reconcile scheduler thread started (interval=%d seconds)", cfg.interval_seconds
    )

    if orchestrator is None:
        orchestrator = build_payout_orchestrator(get_database())

    try:
        # 최초 실행
        run_reconcile_once(orchestrator, cfg)

        # 주기적 실행
        while not stop_event.wait(cfg.interval_seconds):
            run_reconcile_once(orchestrator, cfg)
    finally:
        logger.info("reconcile scheduler thread stopped")


def start_reconcile_scheduler(
    cfg: ReconcileConfig | None = None,
    orchestrator: PayoutOrchestrator | None = None,
) -> None:
    """대사 스케줄러 스레드를 시작한다.

    FastAPI lifespan 에서 호출된다.
    """

    global _RECONCILE_THREAD, _RECONCILE_STOP_EVENT

    if _RECONCILE_THREAD and _RECONCILE_THREAD.is_alive():
        return

    stop_event = threading.Event()
    thread = threading.Thread(
        target=_run_scheduler_loop,
        args=(stop_event, cfg or load_reconcile_config(), orchestrator),
        name="payout-reconcile-scheduler",
        daemon=True,
    )

    _RECONCILE_STOP_EVENT = stop_event
    _RECONCILE_THREAD = thread

    thread.start()
    logger.info("reconcile scheduler thread launched")


def stop_reconcile_scheduler() -> None:
    global _RECONCILE_THREAD, _RECONCILE_STOP_EVENT

    if _RECONCILE_THREAD is None or _RECONCILE_STOP_EVENT is None:
        return

    _RECONCILE_STOP_EVENT.set()
    _RECONCILE_THREAD.join(timeout=10.0)

    _RECONCILE_THREAD = None
    _RECONCILE_STOP_EVENT = None

    logger.info("reconcile scheduler thread stopped by shutdown")
