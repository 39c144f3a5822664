"""원장 도메인 이벤트 발행 헬퍼.

이벤트는 커밋 이후에만 발행한다. 발행 실패가 이미 커밋된 원장 변경을 되돌릴 수는 없으므로
실패는 기록만 하고 호출자에게 전파하지 않는다. 누락된 `payout.requested` 는 대사 스케줄러가 보완한다.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

from common.eventbus.core import EventPublisherInterface
from common.eventbus.helpers import new_event_id, new_json_event, utc_now_iso
from common.eventbus.topics import TOPIC_LEDGER, TOPIC_PAYOUT, TOPIC_REDEMPTION
from common.events.ledger import (
    CoinsCreditedEvent,
    LedgerEventType,
    SpendCommittedEvent,
)
from common.events.settlement import (
    PayoutEventType,
    PayoutRequestedEvent,
    PayoutStatusChangedEvent,
    RedemptionEventType,
    RedemptionStatusChangedEvent,
)

from ..models.payout import Payout, PayoutStatus
from ..models.redemption import Redemption, RedemptionStatus
from ..models.transaction import LedgerTransaction


logger = logging.getLogger(__name__)

EVENT_SOURCE = "ledger-service"
EVENT_VERSION = "1.0"


class LedgerEventPublisher:
    def __init__(self, bus: EventPublisherInterface | None) -> None:
        # bus 가 None 이면 발행을 건너뛴다 (배치 스크립트 등)
        self._bus = bus

    def spend_committed(self, tx: LedgerTransaction, balance_after: int) -> None:
        event = SpendCommittedEvent(
            id=new_event_id(),
            type=LedgerEventType.SPEND_COMMITTED,
            timestamp=utc_now_iso(),
            source=EVENT_SOURCE,
            version=EVENT_VERSION,
            transaction_id=str(tx.id),
            spender_code=tx.actor_code,
            beneficiary_code=tx.beneficiary_code,
            kind=tx.kind.value,
            coins=tx.coins,
            beneficiary_share=str(tx.currency_amount),
            balance_after=balance_after,
            metadata=dict(tx.metadata),
        )
        self._publish(TOPIC_LEDGER.base, event.id, asdict(event))

    def coins_credited(self, tx: LedgerTransaction, balance_after: int) -> None:
        event = CoinsCreditedEvent(
            id=new_event_id(),
            type=LedgerEventType.COINS_CREDITED,
            timestamp=utc_now_iso(),
            source=EVENT_SOURCE,
            version=EVENT_VERSION,
            transaction_id=str(tx.id),
            user_code=tx.actor_code,
            kind=tx.kind.value,
            coins=tx.coins,
            balance_after=balance_after,
        )
        self._publish(TOPIC_LEDGER.base, event.id, asdict(event))

    def redemption_status_changed(
        self,
        redemption: Redemption,
        old_status: RedemptionStatus,
        admin_code: str | None,
    ) -> None:
        event = RedemptionStatusChangedEvent(
            id=new_event_id(),
            type=RedemptionEventType.STATUS_CHANGED,
            timestamp=utc_now_iso(),
            source=EVENT_SOURCE,
            version=EVENT_VERSION,
            redemption_id=str(redemption.id),
            payee_code=redemption.payee_code,
            old_status=old_status.value,
            new_status=redemption.status.value,
            amount=str(redemption.amount),
            admin_code=admin_code,
        )
        self._publish(TOPIC_REDEMPTION.base, event.id, asdict(event))

    def payout_requested(self, payout: Payout) -> None:
        event = PayoutRequestedEvent(
            id=new_event_id(),
            type=PayoutEventType.REQUESTED,
            timestamp=utc_now_iso(),
            source=EVENT_SOURCE,
            version=EVENT_VERSION,
            payout_id=payout.id,
            payee_code=payout.payee_code,
            redemption_id=payout.redemption_id,
            amount=str(payout.amount),
        )
        self._publish(TOPIC_PAYOUT.base, event.id, asdict(event))

    def payout_status_changed(self, payout: Payout, old_status: PayoutStatus) -> None:
        event = PayoutStatusChangedEvent(
            id=new_event_id(),
            type=PayoutEventType.STATUS_CHANGED,
            timestamp=utc_now_iso(),
            source=EVENT_SOURCE,
            version=EVENT_VERSION,
            payout_id=payout.id,
            payee_code=payout.payee_code,
            old_status=old_status.value,
            new_status=payout.status.value,
            amount=str(payout.amount),
            gateway_reference_id=payout.gateway_reference_id,
            error=payout.last_error,
        )
        self._publish(TOPIC_PAYOUT.base, event.id, asdict(event))

    def _publish(self, topic: str, event_id: str, payload: dict[str, Any]) -> None:
        if self._bus is None:
            return
        try:
            self._bus.publish(topic, new_json_event(payload, event_id=event_id))
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "failed to publish %s event %s: %s", payload.get("type"), event_id, exc
            )
