"""지급(외부 송금 시도) 도메인 모델."""

from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel

from .payee import PayeeContact


class PayoutStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REJECTED = "rejected"


IN_FLIGHT_PAYOUT_STATUSES = frozenset({PayoutStatus.PENDING, PayoutStatus.PROCESSING})
TERMINAL_PAYOUT_STATUSES = frozenset(
    {PayoutStatus.COMPLETED, PayoutStatus.FAILED, PayoutStatus.REJECTED}
)

TRANSFER_ID_PREFIX = "PAYOUT_"
PAYEE_ID_PREFIX = "BENE_"
# 게이트웨이 수취인 ID 는 영숫자/밑줄, 최대 50자
_PAYEE_ID_INVALID_CHARS = re.compile(r"[^A-Za-z0-9_]")
_PAYEE_ID_MAX_LENGTH = 50


def transfer_id_for(payout_id: str) -> str:
    """지급 ID 에서 결정적으로 송금 ID 를 만든다. 재시도해도 같은 값이어야 중복 송금이 막힌다."""
    return f"{TRANSFER_ID_PREFIX}{payout_id}"


def payee_id_for(payee_code: str) -> str:
    """응답자 코드에서 결정적으로 게이트웨이 수취인 ID 를 만든다."""
    sanitized = _PAYEE_ID_INVALID_CHARS.sub("_", payee_code)
    return f"{PAYEE_ID_PREFIX}{sanitized}"[:_PAYEE_ID_MAX_LENGTH]


class Payout(BaseModel):
    id: str
    payee_code: str
    redemption_id: str | None = None
    amount: Decimal
    destination: str
    contact: PayeeContact | None = None
    status: PayoutStatus = PayoutStatus.PENDING
    transfer_id: str
    gateway_reference_id: str | None = None
    gateway_response: dict[str, Any] | None = None
    last_error: str | None = None
    attempts: int = 0
    processed_by: str | None = None
    rejection_reason: str | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def new(
        cls,
        payout_id: str,
        payee_code: str,
        amount: Decimal,
        destination: str,
        now: datetime,
        *,
        redemption_id: str | None = None,
        contact: PayeeContact | None = None,
    ) -> "Payout":
        """새 지급 레코드. 송금 ID 는 지급 ID 에서 결정적으로 만든다."""
        return cls(
            id=payout_id,
            payee_code=payee_code,
            redemption_id=redemption_id,
            amount=amount,
            destination=destination,
            contact=contact,
            status=PayoutStatus.PENDING,
            transfer_id=transfer_id_for(payout_id),
            created_at=now,
            updated_at=now,
        )
