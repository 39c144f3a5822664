"""지급 요청 이벤트 핸들러.

`payout.requested` 를 받아 지급 오케스트레이터의 process 를 호출한다. process 는 멱등이므로
재시도 토픽에서 같은 이벤트가 다시 와도 송금은 한 번만 일어난다.
"""

from __future__ import annotations

import logging
import signal
from typing import List

from common.eventbus.config import get_brokers, get_group_id
from common.eventbus.core import Event
from common.eventbus.kafka import KafkaEventBus
from common.eventbus.topics import TOPIC_PAYOUT
from common.events.settlement import PayoutEventType, PayoutRequestedEvent
from common.mongo.client import get_database

from ..dependencies import build_payout_orchestrator
from ..exceptions import NotFound
from ..services.payout_service import PayoutOrchestrator


logger = logging.getLogger(__name__)


def _handle_event(evt: Event, *, orchestrator: PayoutOrchestrator) -> None:
    payload = evt.payload
    if not isinstance(payload, dict):
        logger.error("unexpected payload type for event %s: %r", evt.id, type(payload))
        return

    event_type = str(payload.get("type", ""))
    if event_type != PayoutEventType.REQUESTED:
        logger.debug("ignoring payout event type=%s id=%s", event_type, evt.id)
        return

    try:
        requested = PayoutRequestedEvent.from_dict(payload)
    except Exception:  # noqa: BLE001
        logger.exception("failed to decode PayoutRequestedEvent payload=%r", payload)
        raise

    logger.info(
        "handling payout.requested event id=%s",
        requested.id,
        extra={"payout_id": requested.payout_id, "payee_code": requested.payee_code},
    )

    try:
        payout = orchestrator.process(requested.payout_id)
    except NotFound:
        # 재시도해도 생기지 않는다
        logger.error(
            "payout for event %s does not exist",
            requested.id,
            extra={"payout_id": requested.payout_id},
        )
        return

    logger.info(
        "payout.requested handled: status=%s",
        payout.status.value,
        extra={"payout_id": payout.id},
    )


def run_payout_consumer(
    stop_flag: List[bool],
    orchestrator: PayoutOrchestrator | None = None,
) -> None:
    """payout.requested 를 계속 소비하는 구독 루프를 실행한다.

    - stop_flag[0] 이 True 가 되면 안전하게 루프를 종료한다.
    - FastAPI lifespan 스레드나 단독 프로세스(main) 양쪽에서 재사용 가능하다.
    """
    logger.info("payout-consumer starting up")

    if orchestrator is None:
        orchestrator = build_payout_orchestrator(get_database())

    group_id = get_group_id() + "-payout"
    bus = KafkaEventBus(get_brokers())

    try:
        logger.info("subscribing to topic=%s group_id=%s", TOPIC_PAYOUT.base, group_id)
        bus.subscribe(
            group_id=group_id,
            topic=TOPIC_PAYOUT,
            handler=lambda evt: _handle_event(evt, orchestrator=orchestrator),
            stop_flag=stop_flag,
        )
    finally:
        bus.close()
        logger.info("payout-consumer stopped")


def main() -> None:
    """단독 프로세스로 실행할 때 사용하는 엔트리 포인트."""
    from dotenv import load_dotenv

    from common.logger import setup_logger

    load_dotenv()
    setup_logger(name="ledger-payout-consumer")

    stop_flag: List[bool] = [False]

    def _signal_handler(signum, frame) -> None:  # type: ignore[unused-argument]
        logger.info("received signal %s, shutting down payout-consumer...", signum)
        stop_flag[0] = True

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    run_payout_consumer(stop_flag)


if __name__ == "__main__":  # pragma: no cover
    main()
