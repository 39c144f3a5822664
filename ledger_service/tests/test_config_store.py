from __future__ import annotations

from decimal import Decimal

import pytest

from ledger_service.app.exceptions import ValidationError
from ledger_service.app.services.config_store import ConfigurationStore
from ledger_service.tests.fakes import (
    FakeCommissionConfigRepository,
    FakeTransactionRunner,
    InMemoryLedgerStore,
)


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _make_store(ttl: float = 60.0):
    store = InMemoryLedgerStore()
    repo = FakeCommissionConfigRepository(store)
    clock = _Clock()
    config_store = ConfigurationStore(
        repo, FakeTransactionRunner(store), ttl_seconds=ttl, clock=clock
    )
    return config_store, repo, store, clock


def test_first_read_creates_default_config() -> None:
    config_store, repo, store, _ = _make_store()

    config = config_store.get_active_config()

    assert config.responder_commission_percent == Decimal("60")
    assert config.admin_commission_percent == Decimal("40")
    assert config.chat_coins_per_message == 3
    assert len(store.configs) == 1
    assert store.configs[0].is_active


def test_cached_config_is_reused_until_ttl_expires() -> None:
    config_store, repo, _, clock = _make_store(ttl=30.0)

    config_store.get_active_config()
    config_store.get_active_config()
    assert repo.find_calls == 1

    clock.now += 31
    config_store.get_active_config()
    assert repo.find_calls == 2


def test_repository_failure_serves_last_cached_value() -> None:
    config_store, repo, _, clock = _make_store(ttl=10.0)
    config_store.update_config("admin-1", {"chat_coins_per_message": 5})

    repo.find_error = RuntimeError("mongo down")
    clock.now += 60

    assert config_store.get_active_config().chat_coins_per_message == 5


def test_repository_failure_without_cache_serves_defaults() -> None:
    config_store, repo, store, _ = _make_store()
    repo.find_error = RuntimeError("mongo down")

    config = config_store.get_active_config()

    assert config.chat_coins_per_message == 3
    assert store.configs == []


def test_update_replaces_active_version_and_keeps_history() -> None:
    config_store, repo, store, _ = _make_store()
    config_store.get_active_config()

    updated = config_store.update_config(
        "admin-1", {"conversion_rate": Decimal("0.2"), "video_call_enabled": False}
    )

    assert updated.conversion_rate == Decimal("0.2")
    assert not updated.video_call_enabled
    assert updated.created_by == "admin-1"
    assert [c.is_active for c in store.configs] == [False, True]

    calls_before = repo.find_calls
    assert config_store.get_active_config().id == updated.id
    assert repo.find_calls == calls_before

    history = config_store.list_history()
    assert [c.id for c in history] == [updated.id, store.configs[0].id]


def test_changing_one_percent_rebalances_the_other() -> None:
    config_store, _, _, _ = _make_store()

    updated = config_store.update_config(
        "admin-1", {"responder_commission_percent": Decimal("70")}
    )

    assert updated.responder_commission_percent == Decimal("70")
    assert updated.admin_commission_percent == Decimal("30")


@pytest.mark.parametrize(
    "changes",
    [
        {"responder_commission_percent": Decimal("150")},
        {"responder_commission_percent": Decimal("50"), "admin_commission_percent": Decimal("40")},
        {"conversion_rate": Decimal("0")},
        {"chat_coins_per_message": 0},
        {"minimum_redeemable": Decimal("-1")},
    ],
)
def test_invalid_changes_are_rejected(changes: dict) -> None:
    config_store, _, store, _ = _make_store()
    config_store.get_active_config()

    with pytest.raises(ValidationError) as excinfo:
        config_store.update_config("admin-1", changes)

    assert excinfo.value.code == "VALIDATION_ERROR"
    assert len(store.configs) == 1
    assert store.configs[0].is_active


def test_history_limit_is_clamped() -> None:
    config_store, _, store, _ = _make_store()
    for coins in range(1, 4):
        config_store.update_config("admin-1", {"chat_coins_per_message": coins})

    assert len(config_store.list_history(limit=2)) == 2
    assert len(config_store.list_history(limit=0)) == 3
