from __future__ import annotations

import threading

from ledger_service.app.config import ReconcileConfig
from ledger_service.app.scheduler.reconcile_scheduler import (
    run_reconcile_once,
    start_reconcile_scheduler,
    stop_reconcile_scheduler,
)


class _FakeOrchestrator:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls: list[tuple[int, int]] = []
        self.error = error
        self.called = threading.Event()

    def reconcile_stale(self, older_than_seconds: int, limit: int) -> int:
        self.calls.append((older_than_seconds, limit))
        self.called.set()
        if self.error is not None:
            raise self.error
        return 3


def test_run_once_passes_config_through() -> None:
    orchestrator = _FakeOrchestrator()
    cfg = ReconcileConfig(interval_seconds=60, stale_seconds=120, batch_size=5)

    assert run_reconcile_once(orchestrator, cfg) == 3  # type: ignore[arg-type]
    assert orchestrator.calls == [(120, 5)]


def test_run_once_swallows_errors() -> None:
    orchestrator = _FakeOrchestrator(error=RuntimeError("mongo down"))

    assert run_reconcile_once(orchestrator, ReconcileConfig()) == 0  # type: ignore[arg-type]


def test_scheduler_runs_immediately_and_stops() -> None:
    orchestrator = _FakeOrchestrator()

    start_reconcile_scheduler(
        ReconcileConfig(interval_seconds=3600), orchestrator  # type: ignore[arg-type]
    )
    try:
        assert orchestrator.called.wait(timeout=5.0)
    finally:
        stop_reconcile_scheduler()

    assert len(orchestrator.calls) == 1
