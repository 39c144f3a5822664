"""송금 게이트웨이 웹훅 수신.

알 수 없는 형식이나 모르는 송금이라도 200 을 돌려준다. 게이트웨이의 무한 재전송을 막고,
해당 지급은 대사 스케줄러가 확정한다.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from ..schemas.payouts import WebhookAck
from ...dependencies import get_payout_orchestrator
from ...services.payout_service import PayoutOrchestrator


router = APIRouter()


@router.post("/transfers", response_model=WebhookAck, summary="송금 상태 웹훅")
def transfer_webhook(
    payload: Any = Body(...),
    orchestrator: PayoutOrchestrator = Depends(get_payout_orchestrator),
) -> WebhookAck:
    payout = orchestrator.apply_transfer_webhook(payload)
    return WebhookAck(applied=payout is not None)
