from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol

from ..models.payee import PayeeContact


class TransferStatus(str, Enum):
    SUCCESS = "SUCCESS"
    PENDING = "PENDING"
    FAILED = "FAILED"
    REJECTED = "REJECTED"
    REVERSED = "REVERSED"
    # 게이트웨이가 해당 송금 ID 를 모른다 (요청이 접수되지 않음)
    NOT_FOUND = "NOT_FOUND"


FAILED_TRANSFER_STATUSES = frozenset(
    {TransferStatus.FAILED, TransferStatus.REJECTED, TransferStatus.REVERSED}
)


@dataclass(slots=True)
class TransferReceipt:
    """송금 요청 접수 결과."""

    status: TransferStatus
    reference_id: str | None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class TransferStatusResult:
    status: TransferStatus
    reference_id: str | None
    raw: dict[str, Any] = field(default_factory=dict)


class TransferGatewayInterface(Protocol):
    """외부 송금 게이트웨이 계약.

    명시적 실패는 GatewayFailure, 결과를 알 수 없는 경우는 GatewayAmbiguous 를 던진다.
    """

    def register_payee(
        self, payee_id: str, contact: PayeeContact, destination: str
    ) -> dict[str, Any]:  # pragma: no cover - Protocol
        """이미 등록된 수취인이면 성공으로 취급한다."""
        ...

    def request_transfer(
        self,
        transfer_id: str,
        payee_id: str,
        amount: Decimal,
        mode: str | None = None,
        remarks: str | None = None,
    ) -> TransferReceipt:  # pragma: no cover - Protocol
        ...

    def get_transfer_status(
        self, transfer_id: str
    ) -> TransferStatusResult:  # pragma: no cover - Protocol
        ...

    def get_account_balance(self) -> Decimal:  # pragma: no cover - Protocol
        ...
