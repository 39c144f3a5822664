"""환급 요청 도메인 모델과 상태 전이 규칙."""

from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel

from .payee import PayeeContact


class RedemptionStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


# 관리자 검토 흐름. approved -> completed 는 지급 완료(또는 수동 완료) 시에만 일어난다.
REDEMPTION_TRANSITIONS: dict[RedemptionStatus, frozenset[RedemptionStatus]] = {
    RedemptionStatus.PENDING: frozenset(
        {
            RedemptionStatus.IN_PROGRESS,
            RedemptionStatus.APPROVED,
            RedemptionStatus.REJECTED,
        }
    ),
    RedemptionStatus.IN_PROGRESS: frozenset(
        {RedemptionStatus.APPROVED, RedemptionStatus.REJECTED}
    ),
    RedemptionStatus.APPROVED: frozenset({RedemptionStatus.COMPLETED}),
    RedemptionStatus.REJECTED: frozenset(),
    RedemptionStatus.COMPLETED: frozenset(),
}

OUTSTANDING_REDEMPTION_STATUSES = frozenset(
    {RedemptionStatus.PENDING, RedemptionStatus.IN_PROGRESS}
)

UPI_HANDLE_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+@[a-zA-Z0-9.-]+$")


def is_valid_destination(destination: str) -> bool:
    return bool(UPI_HANDLE_PATTERN.match(destination or ""))


def can_transition(current: RedemptionStatus, target: RedemptionStatus) -> bool:
    return target in REDEMPTION_TRANSITIONS[current]


class Redemption(BaseModel):
    id: str | None = None
    payee_code: str
    amount: Decimal
    destination: str
    contact: PayeeContact | None = None
    status: RedemptionStatus = RedemptionStatus.PENDING
    admin_notes: str | None = None
    processed_by: str | None = None
    processed_at: datetime | None = None
    external_transaction_id: str | None = None
    rejection_reason: str | None = None
    payout_id: str | None = None
    created_at: datetime
    updated_at: datetime


class RedemptionStats(BaseModel):
    status: RedemptionStatus
    count: int
    amount: Decimal
