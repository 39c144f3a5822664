from __future__ import annotations

from decimal import Decimal

import pytest

from ledger_service.app.exceptions import (
    AlreadyLocked,
    BelowMinimum,
    GatewayAmbiguous,
    GatewayFailure,
    InsufficientFunds,
    InvalidDestination,
    InvalidState,
    NotFound,
    ValidationError,
)
from ledger_service.app.gateway.interfaces import (
    TransferReceipt,
    TransferStatus,
    TransferStatusResult,
)
from ledger_service.app.models.payout import Payout, PayoutStatus
from ledger_service.app.models.redemption import RedemptionStatus
from ledger_service.app.models.transaction import TransactionKind
from ledger_service.tests.fakes import LedgerHarness


UPI = "responder@okbank"
D500 = Decimal("500.00")


def _direct(h: LedgerHarness, payee_code: str = "resp-1", pending: str = "500.00") -> Payout:
    h.store.set_earnings(payee_code, pending=pending)
    return h.payouts.request_direct_payout(payee_code, UPI, Decimal(pending))


def _status(status: TransferStatus, reference_id: str | None = None) -> TransferStatusResult:
    return TransferStatusResult(status=status, reference_id=reference_id, raw={"s": status.value})


def test_successful_transfer_settles_locked_funds() -> None:
    h = LedgerHarness()
    payout = _direct(h)
    assert h.store.buckets("resp-1") == (D500, Decimal("0.00"), D500, Decimal("0.00"))

    done = h.payouts.process(payout.id)

    assert done.status is PayoutStatus.COMPLETED
    assert done.gateway_reference_id == "REF-1"
    assert done.attempts == 1
    assert done.completed_at is not None
    assert h.store.buckets("resp-1") == (D500, Decimal("0.00"), Decimal("0.00"), D500)
    assert h.gateway.register_calls[0][0] == "BENE_resp_1"
    assert h.gateway.transfer_calls == [(f"PAYOUT_{payout.id}", "BENE_resp_1", D500)]

    payout_tx = h.store.transactions[-1]
    assert payout_tx.kind is TransactionKind.PAYOUT
    assert payout_tx.currency_amount == D500
    assert payout_tx.metadata["transfer_id"] == payout.transfer_id
    assert h.bus.types() == [
        "payout.requested",
        "payout.status_changed",
        "payout.status_changed",
    ]


def test_explicit_gateway_failure_releases_funds() -> None:
    h = LedgerHarness()
    h.gateway.transfer_error = GatewayFailure(
        "insufficient gateway balance", status_code=400, response={"status": "ERROR"}
    )
    payout = _direct(h)

    failed = h.payouts.process(payout.id)

    assert failed.status is PayoutStatus.FAILED
    assert failed.last_error == "insufficient gateway balance"
    assert h.store.buckets("resp-1") == (D500, D500, Decimal("0.00"), Decimal("0.00"))
    assert not any(tx.kind is TransactionKind.PAYOUT for tx in h.store.transactions)


def test_rejected_receipt_is_treated_as_failure() -> None:
    h = LedgerHarness()
    h.gateway.transfer_receipt = TransferReceipt(
        status=TransferStatus.REJECTED, reference_id=None, raw={"status": "REJECTED"}
    )
    payout = _direct(h)

    assert h.payouts.process(payout.id).status is PayoutStatus.FAILED
    assert h.store.buckets("resp-1")[1] == D500


def test_processing_same_payout_twice_sends_one_transfer() -> None:
    h = LedgerHarness()
    payout = _direct(h)

    first = h.payouts.process(payout.id)
    second = h.payouts.process(payout.id)

    assert first.status is PayoutStatus.COMPLETED
    assert second.status is PayoutStatus.COMPLETED
    assert len(h.gateway.transfer_calls) == 1
    assert h.store.buckets("resp-1")[3] == D500


def test_ambiguous_transfer_stays_processing_with_funds_locked() -> None:
    h = LedgerHarness()
    h.gateway.transfer_error = GatewayAmbiguous("read timeout")
    payout = _direct(h)

    in_doubt = h.payouts.process(payout.id)

    assert in_doubt.status is PayoutStatus.PROCESSING
    assert in_doubt.last_error == "read timeout"
    assert h.store.buckets("resp-1")[2] == D500

    # 다시 처리하면 송금 대신 상태 조회를 한다
    again = h.payouts.process(payout.id)
    assert again.status is PayoutStatus.PROCESSING
    assert len(h.gateway.transfer_calls) == 1
    assert h.gateway.status_calls == [payout.transfer_id]


def test_reconcile_redrives_transfer_unknown_to_gateway() -> None:
    h = LedgerHarness()
    h.gateway.transfer_error = GatewayAmbiguous("connection reset")
    payout = _direct(h)
    h.payouts.process(payout.id)

    h.gateway.transfer_error = None
    h.gateway.status_result = _status(TransferStatus.NOT_FOUND)
    done = h.payouts.reconcile(payout.id)

    assert done.status is PayoutStatus.COMPLETED
    assert [call[0] for call in h.gateway.transfer_calls] == [payout.transfer_id] * 2
    assert h.store.buckets("resp-1")[3] == D500


def test_reconcile_confirms_success_reported_by_gateway() -> None:
    h = LedgerHarness()
    h.gateway.transfer_error = GatewayAmbiguous("read timeout")
    payout = _direct(h)
    h.payouts.process(payout.id)

    h.gateway.status_result = _status(TransferStatus.SUCCESS, "CF-123")
    done = h.payouts.reconcile(payout.id)

    assert done.status is PayoutStatus.COMPLETED
    assert done.gateway_reference_id == "CF-123"
    assert len(h.gateway.transfer_calls) == 1


@pytest.mark.parametrize(
    "status", [TransferStatus.FAILED, TransferStatus.REJECTED, TransferStatus.REVERSED]
)
def test_reconcile_releases_funds_on_failed_status(status: TransferStatus) -> None:
    h = LedgerHarness()
    h.gateway.transfer_error = GatewayAmbiguous("read timeout")
    payout = _direct(h)
    h.payouts.process(payout.id)

    h.gateway.status_result = _status(status)
    failed = h.payouts.reconcile(payout.id)

    assert failed.status is PayoutStatus.FAILED
    assert h.store.buckets("resp-1")[1] == D500


def test_reconcile_keeps_payout_when_status_query_fails() -> None:
    h = LedgerHarness()
    h.gateway.transfer_error = GatewayAmbiguous("read timeout")
    payout = _direct(h)
    h.payouts.process(payout.id)

    h.gateway.status_error = GatewayAmbiguous("gateway 503")
    unchanged = h.payouts.reconcile(payout.id)

    assert unchanged.status is PayoutStatus.PROCESSING
    assert h.store.buckets("resp-1")[2] == D500


def test_reconcile_requires_processing_payout() -> None:
    h = LedgerHarness()
    payout = _direct(h)

    with pytest.raises(InvalidState):
        h.payouts.reconcile(payout.id)


def test_accepted_transfer_completes_on_success_webhook_once() -> None:
    h = LedgerHarness()
    h.gateway.transfer_receipt = TransferReceipt(
        status=TransferStatus.PENDING, reference_id="CF-9", raw={"status": "RECEIVED"}
    )
    payout = _direct(h)
    accepted = h.payouts.process(payout.id)
    assert accepted.status is PayoutStatus.PROCESSING
    assert accepted.gateway_reference_id == "CF-9"

    webhook = {
        "event": "TRANSFER_SUCCESS",
        "transferId": payout.transfer_id,
        "referenceId": "CF-9",
    }
    done = h.payouts.apply_transfer_webhook(webhook)
    replay = h.payouts.apply_transfer_webhook(webhook)

    assert done is not None and done.status is PayoutStatus.COMPLETED
    assert replay is not None and replay.status is PayoutStatus.COMPLETED
    assert h.store.buckets("resp-1") == (D500, Decimal("0.00"), Decimal("0.00"), D500)
    assert sum(tx.kind is TransactionKind.PAYOUT for tx in h.store.transactions) == 1


def test_failure_webhook_in_nested_format_releases_funds() -> None:
    h = LedgerHarness()
    h.gateway.transfer_receipt = TransferReceipt(
        status=TransferStatus.PENDING, reference_id=None, raw={}
    )
    payout = _direct(h)
    h.payouts.process(payout.id)

    failed = h.payouts.apply_transfer_webhook(
        {
            "type": "TRANSFER_FAILED",
            "data": {
                "transfer": {
                    "transfer_id": payout.transfer_id,
                    "status": "FAILED",
                    "status_description": "account blocked",
                }
            },
        }
    )

    assert failed is not None and failed.status is PayoutStatus.FAILED
    assert failed.last_error == "transfer failed: account blocked"
    assert h.store.buckets("resp-1")[1] == D500


def test_unrecognized_or_unknown_webhooks_are_ignored() -> None:
    h = LedgerHarness()

    assert h.payouts.apply_transfer_webhook({"hello": "world"}) is None
    assert h.payouts.apply_transfer_webhook(["not", "an", "object"]) is None
    assert (
        h.payouts.apply_transfer_webhook(
            {"event": "TRANSFER_SUCCESS", "transferId": "PAYOUT_missing"}
        )
        is None
    )


def test_webhook_for_pending_payout_does_not_settle() -> None:
    h = LedgerHarness()
    payout = _direct(h)

    result = h.payouts.apply_transfer_webhook(
        {"event": "TRANSFER_SUCCESS", "transferId": payout.transfer_id}
    )

    assert result is not None and result.status is PayoutStatus.PENDING
    assert h.store.buckets("resp-1")[2] == D500


def test_reconcile_stale_handles_lost_events_and_stuck_transfers() -> None:
    h = LedgerHarness()
    lost = _direct(h, "resp-1")
    h.gateway.transfer_error = GatewayAmbiguous("read timeout")
    stuck = _direct(h, "resp-2")
    h.payouts.process(stuck.id)
    fresh = _direct(h, "resp-3")
    h.gateway.transfer_error = None

    h.store.backdate_payout(lost.id, 3600)
    h.store.backdate_payout(stuck.id, 3600)
    h.gateway.status_result = _status(TransferStatus.SUCCESS, "CF-STUCK")

    handled = h.payouts.reconcile_stale(older_than_seconds=600)

    assert handled == 2
    assert h.payouts.get(lost.id).status is PayoutStatus.COMPLETED
    assert h.payouts.get(stuck.id).status is PayoutStatus.COMPLETED
    assert h.payouts.get(stuck.id).gateway_reference_id == "CF-STUCK"
    assert h.payouts.get(fresh.id).status is PayoutStatus.PENDING


def test_reconcile_stale_continues_after_single_failure() -> None:
    h = LedgerHarness()
    h.gateway.transfer_error = GatewayAmbiguous("read timeout")
    first = _direct(h, "resp-1")
    second = _direct(h, "resp-2")
    h.payouts.process(first.id)
    h.payouts.process(second.id)
    h.store.backdate_payout(first.id, 3600)
    h.store.backdate_payout(second.id, 1800)
    # 첫 번째 지급의 레코드를 망가뜨려 처리 중 예외를 유도한다
    h.store.payouts[first.id] = h.store.payouts[first.id].model_copy(
        update={"payee_code": "ghost"}
    )
    h.gateway.status_result = _status(TransferStatus.SUCCESS, "CF-2")

    handled = h.payouts.reconcile_stale(older_than_seconds=600)

    assert handled == 2
    assert h.payouts.get(second.id).status is PayoutStatus.COMPLETED


def test_registration_failure_fails_payout_without_transfer() -> None:
    h = LedgerHarness()
    h.gateway.register_error = GatewayAmbiguous("gateway 502")
    payout = _direct(h)

    failed = h.payouts.process(payout.id)

    assert failed.status is PayoutStatus.FAILED
    assert failed.last_error is not None
    assert failed.last_error.startswith("payee registration failed")
    assert h.gateway.transfer_calls == []
    assert h.store.buckets("resp-1")[1] == D500


def test_direct_payout_defaults_to_all_pending() -> None:
    h = LedgerHarness()
    h.store.set_earnings("resp-1", pending="250.50")

    payout = h.payouts.request_direct_payout("resp-1", UPI)

    assert payout.amount == Decimal("250.50")
    assert payout.redemption_id is None
    assert h.store.buckets("resp-1")[2] == Decimal("250.50")


def test_direct_payout_validations() -> None:
    h = LedgerHarness()
    h.store.set_earnings("resp-1", pending="1000.00")

    with pytest.raises(InvalidDestination):
        h.payouts.request_direct_payout("resp-1", "bad-handle", Decimal("200.00"))
    with pytest.raises(BelowMinimum):
        h.payouts.request_direct_payout("resp-1", UPI, Decimal("99.99"))
    with pytest.raises(BelowMinimum):
        h.payouts.request_direct_payout("resp-2", UPI)
    with pytest.raises(InsufficientFunds):
        h.payouts.request_direct_payout("resp-1", UPI, Decimal("1000.01"))

    h.payouts.request_direct_payout("resp-1", UPI, Decimal("200.00"))
    with pytest.raises(AlreadyLocked):
        h.payouts.request_direct_payout("resp-1", UPI, Decimal("200.00"))

    _, pending, locked, _ = h.store.buckets("resp-1")
    assert pending == Decimal("800.00")
    assert locked == Decimal("200.00")


def test_admin_reject_releases_pending_payout() -> None:
    h = LedgerHarness()
    payout = _direct(h)

    with pytest.raises(ValidationError):
        h.payouts.reject(payout.id, "admin-1", "")

    rejected = h.payouts.reject(payout.id, "admin-1", "suspicious activity")

    assert rejected.status is PayoutStatus.REJECTED
    assert rejected.processed_by == "admin-1"
    assert h.store.buckets("resp-1")[1] == D500
    with pytest.raises(InvalidState):
        h.payouts.reject(payout.id, "admin-1", "again")


def test_processing_payout_cannot_be_rejected() -> None:
    h = LedgerHarness()
    h.gateway.transfer_error = GatewayAmbiguous("read timeout")
    payout = _direct(h)
    h.payouts.process(payout.id)

    with pytest.raises(InvalidState):
        h.payouts.reject(payout.id, "admin-1", "too late")


def test_retry_after_failed_redemption_payout() -> None:
    h = LedgerHarness()
    h.store.set_earnings("resp-1", pending="150.00")
    h.gateway.transfer_error = GatewayFailure("bank offline")
    redemption = h.redemptions.create_request("resp-1", Decimal("150.00"), UPI)
    approved = h.redemptions.update_status(
        str(redemption.id), RedemptionStatus.APPROVED, "admin-1"
    )
    h.payouts.process(approved.payout_id)  # type: ignore[arg-type]

    h.gateway.transfer_error = None
    retried = h.payouts.retry_redemption_payout(str(redemption.id))

    assert retried.id != approved.payout_id
    assert retried.status is PayoutStatus.PENDING
    assert h.redemptions.get(str(redemption.id)).payout_id == retried.id
    assert h.store.buckets("resp-1")[2] == Decimal("150.00")
    with pytest.raises(InvalidState):
        h.payouts.retry_redemption_payout(str(redemption.id))

    h.payouts.process(retried.id)
    assert h.redemptions.get(str(redemption.id)).status is RedemptionStatus.COMPLETED


def test_retry_requires_approved_redemption() -> None:
    h = LedgerHarness()
    h.store.set_earnings("resp-1", pending="150.00")
    redemption = h.redemptions.create_request("resp-1", Decimal("150.00"), UPI)

    with pytest.raises(InvalidState):
        h.payouts.retry_redemption_payout(str(redemption.id))
    with pytest.raises(NotFound):
        h.payouts.retry_redemption_payout("64b7f0c2a1b2c3d4e5f60718")


def test_listing_and_gateway_balance() -> None:
    h = LedgerHarness()
    first = _direct(h, "resp-1")
    h.payouts.reject(first.id, "admin-1", "no")
    second = h.payouts.request_direct_payout("resp-1", UPI, D500)

    mine, total = h.payouts.list_for_payee("resp-1")
    pending, pending_total = h.payouts.list_all(PayoutStatus.PENDING)

    assert total == 2
    assert [p.id for p in mine] == [second.id, first.id]
    assert pending_total == 1
    assert h.payouts.get_gateway_balance() == Decimal("10000.00")
