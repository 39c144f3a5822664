"""송금 게이트웨이 웹훅 파서.

같은 논리 이벤트가 여러 형식으로 들어온다.
- V1: 평평한 구조 `{"event": "TRANSFER_SUCCESS", "transferId": ..., "referenceId": ...}`
- V2: `{"type": "TRANSFER_SUCCESS", "data": {"transfer_id": ..., "status": ...}}`

경계에서 하나의 TransferEvent 로 정규화하고, 알 수 없는 형식은 UnknownTransferWebhook 으로
분리해 호출자가 기록 후 무시하도록 한다. 추측으로 변환하지 않는다.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping


class TransferOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    REVERSED = "reversed"
    PENDING = "pending"


@dataclass(frozen=True, slots=True)
class TransferEvent:
    transfer_id: str
    outcome: TransferOutcome
    reference_id: str | None = None
    reason: str | None = None
    event_name: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class UnknownTransferWebhook:
    reason: str
    raw: dict[str, Any] = field(default_factory=dict)


TransferWebhook = TransferEvent | UnknownTransferWebhook


_EVENT_OUTCOMES: dict[str, TransferOutcome] = {
    "TRANSFER_SUCCESS": TransferOutcome.SUCCESS,
    # 수취 은행이 입금을 확인한 이벤트. SUCCESS 이후에 온다.
    "TRANSFER_ACKNOWLEDGED": TransferOutcome.SUCCESS,
    "TRANSFER_FAILED": TransferOutcome.FAILED,
    "TRANSFER_REJECTED": TransferOutcome.FAILED,
    "TRANSFER_REVERSED": TransferOutcome.REVERSED,
}

_STATUS_OUTCOMES: dict[str, TransferOutcome] = {
    "SUCCESS": TransferOutcome.SUCCESS,
    "FAILED": TransferOutcome.FAILED,
    "REJECTED": TransferOutcome.FAILED,
    "REVERSED": TransferOutcome.REVERSED,
    "PENDING": TransferOutcome.PENDING,
    "RECEIVED": TransferOutcome.PENDING,
    "APPROVAL_PENDING": TransferOutcome.PENDING,
}


def parse_transfer_webhook(payload: Any) -> TransferWebhook:
    if not isinstance(payload, Mapping):
        return UnknownTransferWebhook(
            reason=f"payload is not an object: {type(payload).__name__}",
            raw={"payload": payload},
        )

    raw = dict(payload)

    if isinstance(raw.get("type"), str) and isinstance(raw.get("data"), Mapping):
        return _parse_v2(raw)
    if isinstance(raw.get("event"), str):
        return _parse_v1(raw)

    return UnknownTransferWebhook(reason="no event/type field", raw=raw)


def _parse_v1(raw: dict[str, Any]) -> TransferWebhook:
    event_name = str(raw["event"]).upper()
    outcome = _EVENT_OUTCOMES.get(event_name)
    if outcome is None:
        return UnknownTransferWebhook(reason=f"unsupported event {event_name}", raw=raw)

    transfer_id = _first_str(raw, "transferId", "transfer_id")
    if not transfer_id:
        return UnknownTransferWebhook(reason="missing transferId", raw=raw)

    return TransferEvent(
        transfer_id=transfer_id,
        outcome=outcome,
        reference_id=_first_str(raw, "referenceId", "reference_id"),
        reason=_first_str(raw, "reason", "message"),
        event_name=event_name,
        raw=raw,
    )


def _parse_v2(raw: dict[str, Any]) -> TransferWebhook:
    event_name = str(raw["type"]).upper()
    data = dict(raw["data"])
    # 일부 이벤트는 data.transfer 아래에 실제 필드를 담는다
    if isinstance(data.get("transfer"), Mapping):
        data = {**data, **dict(data["transfer"])}

    outcome = _EVENT_OUTCOMES.get(event_name)
    if outcome is None:
        status = str(data.get("status") or "").upper()
        outcome = _STATUS_OUTCOMES.get(status)
    if outcome is None:
        return UnknownTransferWebhook(reason=f"unsupported type {event_name}", raw=raw)

    transfer_id = _first_str(data, "transfer_id", "transferId")
    if not transfer_id:
        return UnknownTransferWebhook(reason="missing data.transfer_id", raw=raw)

    return TransferEvent(
        transfer_id=transfer_id,
        outcome=outcome,
        reference_id=_first_str(data, "cf_transfer_id", "referenceId", "reference_id"),
        reason=_first_str(data, "status_description", "reason"),
        event_name=event_name,
        raw=raw,
    )


def _first_str(data: Mapping[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return str(value)
    return None
