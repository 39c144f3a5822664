"""환급(redemption) 및 지급(payout) 관련 이벤트 정의."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Self


class RedemptionEventType:
    STATUS_CHANGED = "redemption.status_changed"


class PayoutEventType:
    """지급 이벤트 타입 상수.

    `payout.requested` 는 지급 컨슈머가 실제 게이트웨이 호출을 수행하는 트리거다.
    """

    REQUESTED = "payout.requested"
    STATUS_CHANGED = "payout.status_changed"


@dataclass(slots=True)
class RedemptionStatusChangedEvent:
    id: str
    type: str
    timestamp: str
    source: str
    version: str
    redemption_id: str
    payee_code: str
    old_status: str
    new_status: str
    amount: str
    admin_code: str | None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            redemption_id=str(data["redemption_id"]),
            payee_code=str(data["payee_code"]),
            old_status=str(data["old_status"]),
            new_status=str(data["new_status"]),
            amount=str(data["amount"]),
            admin_code=data.get("admin_code"),
        )


@dataclass(slots=True)
class PayoutRequestedEvent:
    """지급 레코드가 생성되어 게이트웨이 처리를 기다릴 때 발행된다."""

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    payout_id: str
    payee_code: str
    redemption_id: str | None
    amount: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            payout_id=str(data["payout_id"]),
            payee_code=str(data["payee_code"]),
            redemption_id=data.get("redemption_id"),
            amount=str(data["amount"]),
        )


@dataclass(slots=True)
class PayoutStatusChangedEvent:
    id: str
    type: str
    timestamp: str
    source: str
    version: str
    payout_id: str
    payee_code: str
    old_status: str
    new_status: str
    amount: str
    gateway_reference_id: str | None
    error: str | None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            timestamp=str(data["timestamp"]),
            source=str(data["source"]),
            version=str(data.get("version", "1.0")),
            payout_id=str(data["payout_id"]),
            payee_code=str(data["payee_code"]),
            old_status=str(data["old_status"]),
            new_status=str(data["new_status"]),
            amount=str(data["amount"]),
            gateway_reference_id=data.get("gateway_reference_id"),
            error=data.get("error"),
        )
