from __future__ import annotations

import pytest

from ledger_service.app.gateway.webhooks import (
    TransferEvent,
    TransferOutcome,
    UnknownTransferWebhook,
    parse_transfer_webhook,
)


def test_flat_success_event() -> None:
    event = parse_transfer_webhook(
        {
            "event": "TRANSFER_SUCCESS",
            "transferId": "PAYOUT_1",
            "referenceId": 12345,
            "acknowledged": 0,
        }
    )

    assert isinstance(event, TransferEvent)
    assert event.transfer_id == "PAYOUT_1"
    assert event.outcome is TransferOutcome.SUCCESS
    assert event.reference_id == "12345"
    assert event.event_name == "TRANSFER_SUCCESS"


def test_flat_failure_event_keeps_reason() -> None:
    event = parse_transfer_webhook(
        {"event": "transfer_failed", "transferId": "PAYOUT_1", "reason": "Account closed"}
    )

    assert isinstance(event, TransferEvent)
    assert event.outcome is TransferOutcome.FAILED
    assert event.reason == "Account closed"


def test_nested_event_with_transfer_block() -> None:
    event = parse_transfer_webhook(
        {
            "type": "TRANSFER_REVERSED",
            "event_time": "2024-01-01T10:00:00",
            "data": {
                "transfer": {
                    "transfer_id": "PAYOUT_2",
                    "cf_transfer_id": "CF-9",
                    "status": "REVERSED",
                    "status_description": "Beneficiary bank reversed",
                }
            },
        }
    )

    assert isinstance(event, TransferEvent)
    assert event.transfer_id == "PAYOUT_2"
    assert event.outcome is TransferOutcome.REVERSED
    assert event.reference_id == "CF-9"
    assert event.reason == "Beneficiary bank reversed"


def test_nested_event_falls_back_to_status_field() -> None:
    event = parse_transfer_webhook(
        {"type": "TRANSFER_UPDATE", "data": {"transfer_id": "PAYOUT_3", "status": "SUCCESS"}}
    )

    assert isinstance(event, TransferEvent)
    assert event.outcome is TransferOutcome.SUCCESS


@pytest.mark.parametrize(
    "payload",
    [
        None,
        "TRANSFER_SUCCESS",
        [],
        {},
        {"event": "LOW_BALANCE_ALERT", "balance": "10"},
        {"event": "TRANSFER_SUCCESS"},
        {"type": "TRANSFER_UPDATE", "data": {"transfer_id": "PAYOUT_3", "status": "WEIRD"}},
        {"type": "TRANSFER_SUCCESS", "data": {"status": "SUCCESS"}},
    ],
)
def test_unrecognized_payloads_are_not_guessed(payload: object) -> None:
    assert isinstance(parse_transfer_webhook(payload), UnknownTransferWebhook)
