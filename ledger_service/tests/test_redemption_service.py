from __future__ import annotations

from decimal import Decimal

import pytest

from ledger_service.app.exceptions import (
    AlreadyLocked,
    BelowMinimum,
    GatewayFailure,
    InsufficientFunds,
    InvalidDestination,
    InvalidState,
    NotFound,
    ValidationError,
)
from ledger_service.app.models.payee import PayeeContact
from ledger_service.app.models.payout import PayoutStatus
from ledger_service.app.models.redemption import RedemptionStatus
from ledger_service.app.models.transaction import TransactionKind
from ledger_service.tests.fakes import LedgerHarness


UPI = "responder@okbank"


def _harness_with_earnings(pending: str = "150.00") -> LedgerHarness:
    h = LedgerHarness()
    h.store.set_earnings("resp-1", pending=pending)
    return h


def test_request_locks_amount_and_rejection_returns_it() -> None:
    h = _harness_with_earnings()

    redemption = h.redemptions.create_request(
        "resp-1", Decimal("120.00"), UPI, contact=PayeeContact(name="Resp One")
    )

    assert redemption.status is RedemptionStatus.PENDING
    assert h.store.buckets("resp-1") == (
        Decimal("150.00"),
        Decimal("30.00"),
        Decimal("120.00"),
        Decimal("0.00"),
    )

    rejected = h.redemptions.update_status(
        str(redemption.id), RedemptionStatus.REJECTED, "admin-1", "kyc mismatch"
    )

    assert rejected.status is RedemptionStatus.REJECTED
    assert rejected.rejection_reason == "kyc mismatch"
    assert rejected.processed_by == "admin-1"
    assert h.store.buckets("resp-1") == (
        Decimal("150.00"),
        Decimal("150.00"),
        Decimal("0.00"),
        Decimal("0.00"),
    )
    assert h.bus.types() == ["redemption.status_changed"]


def test_request_below_minimum_is_refused() -> None:
    h = _harness_with_earnings(pending="99.99")

    with pytest.raises(BelowMinimum):
        h.redemptions.create_request("resp-1", Decimal("50.00"), UPI)

    assert h.store.redemptions == {}


def test_request_above_pending_is_refused() -> None:
    h = _harness_with_earnings()

    with pytest.raises(InsufficientFunds):
        h.redemptions.create_request("resp-1", Decimal("150.01"), UPI)


@pytest.mark.parametrize("destination", ["", "not-a-handle", "a@b@c", "user @bank"])
def test_request_with_invalid_destination_is_refused(destination: str) -> None:
    h = _harness_with_earnings()

    with pytest.raises(InvalidDestination):
        h.redemptions.create_request("resp-1", Decimal("100.00"), destination)


def test_request_with_non_positive_amount_is_refused() -> None:
    h = _harness_with_earnings()

    with pytest.raises(ValidationError):
        h.redemptions.create_request("resp-1", Decimal("0"), UPI)


def test_only_one_outstanding_request_per_payee() -> None:
    h = _harness_with_earnings(pending="300.00")
    h.redemptions.create_request("resp-1", Decimal("100.00"), UPI)

    with pytest.raises(AlreadyLocked):
        h.redemptions.create_request("resp-1", Decimal("100.00"), UPI)

    _, pending, locked, _ = h.store.buckets("resp-1")
    assert pending == Decimal("200.00")
    assert locked == Decimal("100.00")


def test_rejection_requires_reason() -> None:
    h = _harness_with_earnings()
    redemption = h.redemptions.create_request("resp-1", Decimal("100.00"), UPI)

    with pytest.raises(ValidationError):
        h.redemptions.update_status(
            str(redemption.id), RedemptionStatus.REJECTED, "admin-1"
        )

    assert h.redemptions.get(str(redemption.id)).status is RedemptionStatus.PENDING


def test_illegal_transitions_are_refused() -> None:
    h = _harness_with_earnings()
    redemption = h.redemptions.create_request("resp-1", Decimal("100.00"), UPI)
    redemption_id = str(redemption.id)

    with pytest.raises(InvalidState):
        h.redemptions.update_status(
            redemption_id, RedemptionStatus.COMPLETED, "admin-1", "UTR123"
        )

    h.redemptions.update_status(redemption_id, RedemptionStatus.REJECTED, "admin-1", "dup")
    for target in RedemptionStatus:
        with pytest.raises(InvalidState):
            h.redemptions.update_status(redemption_id, target, "admin-1", "x")


def test_unknown_redemption_is_not_found() -> None:
    h = LedgerHarness()

    with pytest.raises(NotFound):
        h.redemptions.get("64b7f0c2a1b2c3d4e5f60718")


def test_approval_creates_payout_and_publishes_request() -> None:
    h = _harness_with_earnings()
    redemption = h.redemptions.create_request("resp-1", Decimal("100.00"), UPI)
    h.redemptions.update_status(
        str(redemption.id), RedemptionStatus.IN_PROGRESS, "admin-1"
    )

    approved = h.redemptions.update_status(
        str(redemption.id), RedemptionStatus.APPROVED, "admin-1", notes="looks good"
    )

    assert approved.status is RedemptionStatus.APPROVED
    assert approved.admin_notes == "looks good"
    payout = h.store.payouts[approved.payout_id]  # type: ignore[index]
    assert payout.status is PayoutStatus.PENDING
    assert payout.redemption_id == str(redemption.id)
    assert payout.amount == Decimal("100.00")
    assert payout.transfer_id == f"PAYOUT_{payout.id}"
    # 승인만으로는 금액이 움직이지 않는다
    assert h.store.buckets("resp-1")[2] == Decimal("100.00")
    assert h.bus.types() == [
        "redemption.status_changed",
        "redemption.status_changed",
        "payout.requested",
    ]


def test_approved_redemption_completes_when_payout_succeeds() -> None:
    h = _harness_with_earnings()
    redemption = h.redemptions.create_request("resp-1", Decimal("150.00"), UPI)
    approved = h.redemptions.update_status(
        str(redemption.id), RedemptionStatus.APPROVED, "admin-1"
    )

    payout = h.payouts.process(approved.payout_id)  # type: ignore[arg-type]

    assert payout.status is PayoutStatus.COMPLETED
    completed = h.redemptions.get(str(redemption.id))
    assert completed.status is RedemptionStatus.COMPLETED
    assert completed.external_transaction_id == "REF-1"
    assert h.store.buckets("resp-1") == (
        Decimal("150.00"),
        Decimal("0.00"),
        Decimal("0.00"),
        Decimal("150.00"),
    )


def test_manual_completion_refused_while_payout_in_flight() -> None:
    h = _harness_with_earnings()
    redemption = h.redemptions.create_request("resp-1", Decimal("100.00"), UPI)
    h.redemptions.update_status(str(redemption.id), RedemptionStatus.APPROVED, "admin-1")

    with pytest.raises(InvalidState):
        h.redemptions.update_status(
            str(redemption.id), RedemptionStatus.COMPLETED, "admin-1", "UTR123"
        )


def test_manual_completion_after_failed_payout_settles_funds() -> None:
    h = _harness_with_earnings()
    h.gateway.transfer_error = GatewayFailure("beneficiary account closed")
    redemption = h.redemptions.create_request("resp-1", Decimal("100.00"), UPI)
    approved = h.redemptions.update_status(
        str(redemption.id), RedemptionStatus.APPROVED, "admin-1"
    )
    failed = h.payouts.process(approved.payout_id)  # type: ignore[arg-type]
    assert failed.status is PayoutStatus.FAILED
    assert h.store.buckets("resp-1")[1] == Decimal("150.00")

    completed = h.redemptions.update_status(
        str(redemption.id), RedemptionStatus.COMPLETED, "admin-1", "UTR123"
    )

    assert completed.status is RedemptionStatus.COMPLETED
    assert completed.external_transaction_id == "UTR123"
    assert h.store.buckets("resp-1") == (
        Decimal("150.00"),
        Decimal("50.00"),
        Decimal("0.00"),
        Decimal("100.00"),
    )
    payout_tx = h.store.transactions[-1]
    assert payout_tx.kind is TransactionKind.PAYOUT
    assert payout_tx.currency_amount == Decimal("100.00")
    assert payout_tx.metadata["manual"] is True


def _approved_with_failed_payout(h: LedgerHarness) -> tuple[str, str]:
    h.gateway.transfer_error = GatewayFailure("beneficiary account closed")
    redemption = h.redemptions.create_request("resp-1", Decimal("100.00"), UPI)
    approved = h.redemptions.update_status(
        str(redemption.id), RedemptionStatus.APPROVED, "admin-1"
    )
    h.payouts.process(approved.payout_id)  # type: ignore[arg-type]
    h.gateway.transfer_error = None
    return str(redemption.id), approved.payout_id  # type: ignore[return-value]


def test_retry_committed_during_manual_completion_is_paid_once() -> None:
    h = _harness_with_earnings("300.00")
    redemption_id, _ = _approved_with_failed_payout(h)

    # 관리자가 환급을 읽은 직후 다른 관리자가 재지급을 확정한다
    retried = []
    load = h.redemption_repo.get

    def load_then_retry(rid: str, session=None):
        loaded = load(rid, session=session)
        if not retried:
            retried.append(None)
            retried[0] = h.payouts.retry_redemption_payout(rid)
        return loaded

    h.redemption_repo.get = load_then_retry  # type: ignore[method-assign]

    with pytest.raises(InvalidState):
        h.redemptions.update_status(
            redemption_id, RedemptionStatus.COMPLETED, "admin-1", "UTR-1"
        )
    h.redemption_repo.get = load  # type: ignore[method-assign]

    paid = h.payouts.process(retried[0].id)

    assert paid.status is PayoutStatus.COMPLETED
    assert h.redemptions.get(redemption_id).status is RedemptionStatus.COMPLETED
    assert h.store.buckets("resp-1") == (
        Decimal("300.00"),
        Decimal("200.00"),
        Decimal("0.00"),
        Decimal("100.00"),
    )
    payout_rows = [t for t in h.store.transactions if t.kind is TransactionKind.PAYOUT]
    assert len(payout_rows) == 1


def test_manual_completion_with_stale_payout_read_is_refused() -> None:
    h = _harness_with_earnings("300.00")
    redemption_id, failed_id = _approved_with_failed_payout(h)
    failed = h.payouts.get(failed_id)
    retry = h.payouts.retry_redemption_payout(redemption_id)

    # 재지급 이전 스냅샷을 본 것처럼 실패한 지급을 최신으로 돌려준다
    latest = h.payout_repo.find_latest_for_redemption
    h.payout_repo.find_latest_for_redemption = (  # type: ignore[method-assign]
        lambda rid, session=None: failed
    )

    with pytest.raises(InvalidState):
        h.redemptions.update_status(
            redemption_id, RedemptionStatus.COMPLETED, "admin-1", "UTR-1"
        )
    h.payout_repo.find_latest_for_redemption = latest  # type: ignore[method-assign]

    current = h.redemptions.get(redemption_id)
    assert current.status is RedemptionStatus.APPROVED
    assert current.payout_id == retry.id
    assert h.store.buckets("resp-1") == (
        Decimal("300.00"),
        Decimal("200.00"),
        Decimal("100.00"),
        Decimal("0.00"),
    )

    h.payouts.process(retry.id)

    assert h.store.buckets("resp-1")[3] == Decimal("100.00")


def test_payout_retry_after_concurrent_manual_completion_is_refused() -> None:
    h = _harness_with_earnings("300.00")
    redemption_id, failed_id = _approved_with_failed_payout(h)

    # 재지급이 상태를 확인한 직후 수동 완료가 먼저 확정된다
    completed = []
    latest = h.payout_repo.find_latest_for_redemption

    def latest_then_complete(rid: str, session=None):
        found = latest(rid, session=session)
        if not completed:
            completed.append(None)
            completed[0] = h.redemptions.update_status(
                rid, RedemptionStatus.COMPLETED, "admin-1", "UTR-1"
            )
        return found

    h.payout_repo.find_latest_for_redemption = latest_then_complete  # type: ignore[method-assign]

    with pytest.raises(InvalidState):
        h.payouts.retry_redemption_payout(redemption_id)
    h.payout_repo.find_latest_for_redemption = latest  # type: ignore[method-assign]

    assert completed[0].status is RedemptionStatus.COMPLETED
    assert [p.id for p in h.store.payouts.values()] == [failed_id]
    assert h.store.buckets("resp-1") == (
        Decimal("300.00"),
        Decimal("200.00"),
        Decimal("0.00"),
        Decimal("100.00"),
    )
    assert len(h.gateway.transfer_calls) == 1


def test_manual_completion_requires_external_transaction_id() -> None:
    h = _harness_with_earnings()
    h.gateway.transfer_error = GatewayFailure("closed")
    redemption = h.redemptions.create_request("resp-1", Decimal("100.00"), UPI)
    approved = h.redemptions.update_status(
        str(redemption.id), RedemptionStatus.APPROVED, "admin-1"
    )
    h.payouts.process(approved.payout_id)  # type: ignore[arg-type]

    with pytest.raises(ValidationError):
        h.redemptions.update_status(
            str(redemption.id), RedemptionStatus.COMPLETED, "admin-1"
        )


def test_manual_completion_fails_when_earnings_were_spent_elsewhere() -> None:
    h = _harness_with_earnings()
    h.gateway.transfer_error = GatewayFailure("closed")
    redemption = h.redemptions.create_request("resp-1", Decimal("100.00"), UPI)
    approved = h.redemptions.update_status(
        str(redemption.id), RedemptionStatus.APPROVED, "admin-1"
    )
    h.payouts.process(approved.payout_id)  # type: ignore[arg-type]
    # 실패로 돌아온 pending 이 다른 지급으로 나갔다
    h.gateway.transfer_error = None
    h.payouts.process(
        h.payouts.request_direct_payout("resp-1", UPI, Decimal("150.00")).id
    )

    with pytest.raises(InsufficientFunds):
        h.redemptions.update_status(
            str(redemption.id), RedemptionStatus.COMPLETED, "admin-1", "UTR123"
        )

    assert h.redemptions.get(str(redemption.id)).status is RedemptionStatus.APPROVED


def test_listing_and_stats() -> None:
    h = LedgerHarness()
    h.store.set_earnings("resp-1", pending="500.00")
    h.store.set_earnings("resp-2", pending="500.00")
    first = h.redemptions.create_request("resp-1", Decimal("100.00"), UPI)
    h.redemptions.update_status(str(first.id), RedemptionStatus.REJECTED, "admin-1", "no")
    second = h.redemptions.create_request("resp-1", Decimal("200.00"), UPI)
    h.redemptions.create_request("resp-2", Decimal("300.00"), "other@bank")

    mine, total = h.redemptions.list_for_payee("resp-1")
    pending, pending_total = h.redemptions.list_all(RedemptionStatus.PENDING)
    stats = {s.status: s for s in h.redemptions.stats()}

    assert total == 2
    assert [r.id for r in mine] == [second.id, first.id]
    assert pending_total == 2
    assert stats[RedemptionStatus.PENDING].count == 2
    assert stats[RedemptionStatus.PENDING].amount == Decimal("500.00")
    assert stats[RedemptionStatus.REJECTED].count == 1
