from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol, Sequence

from ..models.commission_config import CommissionConfig
from ..models.earnings import Earnings, EarningsBucket
from ..models.payout import Payout, PayoutStatus
from ..models.redemption import Redemption, RedemptionStats, RedemptionStatus
from ..models.transaction import LedgerTransaction
from ..models.wallet import Wallet


# 모든 변경 메서드는 `session` 을 받아 트랜잭션 스코프 안에서 실행될 수 있다.
# session=None 이면 단일 도큐먼트 원자성만 보장된다.


class WalletRepositoryInterface(Protocol):
    """사용자 코인 잔액 저장소.

    잔액 차감은 반드시 조건부 갱신(잔액 >= 차감액)으로 수행해야 한다.
    """

    def get(
        self, user_code: str, session: Any = None
    ) -> Wallet | None:  # pragma: no cover - Protocol
        ...

    def try_debit(
        self, user_code: str, coins: int, session: Any = None
    ) -> Wallet | None:  # pragma: no cover - Protocol
        """잔액이 충분할 때만 차감하고 차감 후 지갑을 반환한다. 부족하면 None."""
        ...

    def credit(
        self, user_code: str, coins: int, session: Any = None
    ) -> Wallet:  # pragma: no cover - Protocol
        """잔액에 coins(음수 허용)를 더한다. 지갑이 없으면 만든다."""
        ...


class EarningsRepositoryInterface(Protocol):
    """응답자 수익 버킷 저장소."""

    def get(
        self, payee_code: str, session: Any = None
    ) -> Earnings | None:  # pragma: no cover - Protocol
        ...

    def add_pending(
        self, payee_code: str, amount: Decimal, session: Any = None
    ) -> Earnings:  # pragma: no cover - Protocol
        """total 과 pending 을 함께 증가시킨다. 문서가 없으면 만든다."""
        ...

    def move(
        self,
        payee_code: str,
        source: EarningsBucket,
        target: EarningsBucket,
        amount: Decimal,
        session: Any = None,
    ) -> Earnings | None:  # pragma: no cover - Protocol
        """source 버킷이 amount 이상일 때만 source -> target 으로 옮긴다. 실패 시 None."""
        ...


class TransactionRepositoryInterface(Protocol):
    """불변 원장 거래 저장소. 수정/삭제 메서드는 두지 않는다."""

    def insert(
        self, tx: LedgerTransaction, session: Any = None
    ) -> LedgerTransaction:  # pragma: no cover - Protocol
        """멱등 키가 중복되면 pymongo DuplicateKeyError 를 그대로 던진다."""
        ...

    def find_by_idempotency_key(
        self, idempotency_key: str
    ) -> LedgerTransaction | None:  # pragma: no cover - Protocol
        ...

    def list_by_actor(
        self, actor_code: str, page: int, page_size: int
    ) -> tuple[list[LedgerTransaction], int]:  # pragma: no cover - Protocol
        ...

    def list_by_beneficiary(
        self, beneficiary_code: str, page: int, page_size: int
    ) -> tuple[list[LedgerTransaction], int]:  # pragma: no cover - Protocol
        ...


class RedemptionRepositoryInterface(Protocol):
    def insert(
        self, redemption: Redemption, session: Any = None
    ) -> Redemption:  # pragma: no cover - Protocol
        """수취인당 미결 요청이 이미 있으면 DuplicateKeyError 를 던진다."""
        ...

    def get(
        self, redemption_id: str, session: Any = None
    ) -> Redemption | None:  # pragma: no cover - Protocol
        ...

    def find_outstanding(
        self, payee_code: str, session: Any = None
    ) -> Redemption | None:  # pragma: no cover - Protocol
        ...

    def transition(
        self,
        redemption_id: str,
        expected: RedemptionStatus,
        new_status: RedemptionStatus,
        fields: dict[str, Any] | None = None,
        session: Any = None,
        expected_payout_id: str | None = None,
    ) -> Redemption | None:  # pragma: no cover - Protocol
        """현재 상태가 expected 일 때만 상태를 바꾼다 (compare-and-set). 실패 시 None.

        expected_payout_id 가 주어지면 연결된 지급 id 도 일치해야 한다.
        """
        ...

    def attach_payout(
        self,
        redemption_id: str,
        payout_id: str,
        expected_payout_id: str | None,
        session: Any = None,
    ) -> Redemption | None:  # pragma: no cover - Protocol
        """approved 상태이고 연결된 지급이 expected_payout_id 일 때만 새 지급을 연결한다."""
        ...

    def list_by_payee(
        self, payee_code: str, page: int, page_size: int
    ) -> tuple[list[Redemption], int]:  # pragma: no cover - Protocol
        ...

    def list_all(
        self, status: RedemptionStatus | None, page: int, page_size: int
    ) -> tuple[list[Redemption], int]:  # pragma: no cover - Protocol
        ...

    def stats(self) -> list[RedemptionStats]:  # pragma: no cover - Protocol
        ...


class PayoutRepositoryInterface(Protocol):
    def insert(
        self, payout: Payout, session: Any = None
    ) -> Payout:  # pragma: no cover - Protocol
        """수취인당 진행 중 지급이 이미 있으면 DuplicateKeyError 를 던진다."""
        ...

    def get(
        self, payout_id: str, session: Any = None
    ) -> Payout | None:  # pragma: no cover - Protocol
        ...

    def find_by_transfer_id(
        self, transfer_id: str
    ) -> Payout | None:  # pragma: no cover - Protocol
        ...

    def find_latest_for_redemption(
        self, redemption_id: str, session: Any = None
    ) -> Payout | None:  # pragma: no cover - Protocol
        ...

    def transition(
        self,
        payout_id: str,
        expected: Sequence[PayoutStatus],
        new_status: PayoutStatus,
        fields: dict[str, Any] | None = None,
        session: Any = None,
        increment_attempts: bool = False,
    ) -> Payout | None:  # pragma: no cover - Protocol
        """현재 상태가 expected 중 하나일 때만 상태를 바꾼다. 실패 시 None."""
        ...

    def list_stale(
        self, statuses: Sequence[PayoutStatus], older_than: datetime, limit: int
    ) -> list[Payout]:  # pragma: no cover - Protocol
        """updated_at 이 older_than 이전인 statuses 상태의 지급을 오래된 순으로 반환한다."""
        ...

    def list_by_payee(
        self, payee_code: str, page: int, page_size: int
    ) -> tuple[list[Payout], int]:  # pragma: no cover - Protocol
        ...

    def list_all(
        self, status: PayoutStatus | None, page: int, page_size: int
    ) -> tuple[list[Payout], int]:  # pragma: no cover - Protocol
        ...


class CommissionConfigRepositoryInterface(Protocol):
    def find_active(self) -> CommissionConfig | None:  # pragma: no cover - Protocol
        ...

    def insert_active(
        self, config: CommissionConfig, session: Any = None
    ) -> CommissionConfig:  # pragma: no cover - Protocol
        """활성 설정이 이미 있으면 DuplicateKeyError 를 던진다."""
        ...

    def deactivate(
        self, config_id: str, session: Any = None
    ) -> bool:  # pragma: no cover - Protocol
        ...

    def list_history(
        self, limit: int
    ) -> list[CommissionConfig]:  # pragma: no cover - Protocol
        ...
