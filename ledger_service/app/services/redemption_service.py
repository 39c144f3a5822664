"""환급 요청 상태 머신.

pending -> in_progress -> {approved, rejected}, approved -> completed.
요청 생성 시 pending 수익을 locked 로 예약하고, 거절 시 되돌린다. 승인하면 같은 스코프에서
지급 레코드를 만들고, locked 금액의 처리 권한은 지급 오케스트레이터로 넘어간다.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from pymongo.errors import DuplicateKeyError

from common.mongo.transaction import TransactionRunnerInterface
from common.mongo.types import new_object_id
from common.types.datetime import utc_now

from ..exceptions import (
    AlreadyLocked,
    BelowMinimum,
    ConcurrencyConflict,
    InsufficientFunds,
    InvalidDestination,
    InvalidState,
    NotFound,
    ValidationError,
)
from ..models.money import ZERO, to_money
from ..models.payee import PayeeContact
from ..models.payout import IN_FLIGHT_PAYOUT_STATUSES, Payout, PayoutStatus
from ..models.redemption import (
    Redemption,
    RedemptionStats,
    RedemptionStatus,
    can_transition,
    is_valid_destination,
)
from ..models.transaction import LedgerTransaction, TransactionKind
from ..repositories.interfaces import (
    EarningsRepositoryInterface,
    PayoutRepositoryInterface,
    RedemptionRepositoryInterface,
    TransactionRepositoryInterface,
)
from .config_store import ConfigurationStore
from .event_publisher import LedgerEventPublisher
from .funds_reservation import FundsReservation


logger = logging.getLogger(__name__)

# 지급이 끝났지만 성공하지 못해 locked 금액이 이미 pending 으로 돌아간 상태
_RELEASED_PAYOUT_STATUSES = frozenset({PayoutStatus.FAILED, PayoutStatus.REJECTED})


class RedemptionService:
    def __init__(
        self,
        redemption_repo: RedemptionRepositoryInterface,
        payout_repo: PayoutRepositoryInterface,
        earnings_repo: EarningsRepositoryInterface,
        transaction_repo: TransactionRepositoryInterface,
        funds: FundsReservation,
        config_store: ConfigurationStore,
        tx_runner: TransactionRunnerInterface,
        events: LedgerEventPublisher,
    ) -> None:
        self._redemption_repo = redemption_repo
        self._payout_repo = payout_repo
        self._earnings_repo = earnings_repo
        self._transaction_repo = transaction_repo
        self._funds = funds
        self._config_store = config_store
        self._tx = tx_runner
        self._events = events

    def create_request(
        self,
        payee_code: str,
        amount: Decimal,
        destination: str,
        contact: PayeeContact | None = None,
    ) -> Redemption:
        """환급 요청을 만들고 요청 금액을 pending -> locked 로 예약한다."""
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("amount must be positive", amount=str(amount))
        if not is_valid_destination(destination):
            raise InvalidDestination("destination must be a valid UPI handle")

        config = self._config_store.get_active_config()
        earnings = self._earnings_repo.get(payee_code)
        pending = earnings.pending if earnings else ZERO
        if pending < config.minimum_redeemable:
            raise BelowMinimum(
                f"minimum {config.minimum_redeemable} required for redemption",
                pending=str(pending),
                minimum=str(config.minimum_redeemable),
            )
        if pending < amount:
            raise InsufficientFunds(
                "requested amount exceeds pending earnings",
                pending=str(pending),
                requested=str(amount),
            )

        # 사전 검사. 최종 보장은 부분 유니크 인덱스가 한다.
        if self._redemption_repo.find_outstanding(payee_code) is not None:
            raise AlreadyLocked("a redemption request is already outstanding")

        now = utc_now()
        try:
            with self._tx.transaction() as session:
                redemption = self._redemption_repo.insert(
                    Redemption(
                        payee_code=payee_code,
                        amount=amount,
                        destination=destination,
                        contact=contact,
                        status=RedemptionStatus.PENDING,
                        created_at=now,
                        updated_at=now,
                    ),
                    session=session,
                )
                self._funds.reserve(payee_code, amount, session=session)
        except DuplicateKeyError as exc:
            raise AlreadyLocked("a redemption request is already outstanding") from exc
        except ConcurrencyConflict as exc:
            raise InsufficientFunds("pending earnings changed concurrently") from exc

        logger.info(
            "redemption requested: %s",
            amount,
            extra={"payee_code": payee_code, "redemption_id": redemption.id},
        )
        return redemption

    def update_status(
        self,
        redemption_id: str,
        new_status: RedemptionStatus,
        admin_code: str,
        reason_or_txn_id: str | None = None,
        notes: str | None = None,
    ) -> Redemption:
        redemption = self.get(redemption_id)
        current = redemption.status
        if not can_transition(current, new_status):
            logger.error(
                "illegal redemption transition %s -> %s",
                current.value,
                new_status.value,
                extra={"redemption_id": redemption_id},
            )
            raise InvalidState(
                f"cannot move redemption from {current.value} to {new_status.value}"
            )

        fields: dict[str, Any] = {"processed_by": admin_code, "processed_at": utc_now()}
        if notes:
            fields["admin_notes"] = notes

        payout: Payout | None = None
        if new_status is RedemptionStatus.REJECTED:
            updated = self._reject(redemption, fields, reason_or_txn_id)
        elif new_status is RedemptionStatus.APPROVED:
            updated, payout = self._approve(redemption, fields)
        elif new_status is RedemptionStatus.COMPLETED:
            updated = self._complete_manually(redemption, fields, reason_or_txn_id)
        else:
            updated = self._redemption_repo.transition(
                redemption_id, current, new_status, fields
            )
            if updated is None:
                raise self._lost_race(redemption_id)

        logger.info(
            "redemption %s -> %s by %s",
            current.value,
            new_status.value,
            admin_code,
            extra={"redemption_id": redemption_id, "payee_code": redemption.payee_code},
        )
        self._events.redemption_status_changed(updated, current, admin_code)
        if payout is not None:
            self._events.payout_requested(payout)
        return updated

    def get(self, redemption_id: str) -> Redemption:
        redemption = self._redemption_repo.get(redemption_id)
        if redemption is None:
            raise NotFound("redemption not found", redemption_id=redemption_id)
        return redemption

    def list_for_payee(
        self, payee_code: str, page: int = 1, page_size: int = 20
    ) -> tuple[list[Redemption], int]:
        return self._redemption_repo.list_by_payee(payee_code, page, page_size)

    def list_all(
        self,
        status: RedemptionStatus | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Redemption], int]:
        return self._redemption_repo.list_all(status, page, page_size)

    def stats(self) -> list[RedemptionStats]:
        return self._redemption_repo.stats()

    # 전이별 처리 ------------------------------------------------------------
    def _reject(
        self,
        redemption: Redemption,
        fields: dict[str, Any],
        reason: str | None,
    ) -> Redemption:
        if not reason:
            raise ValidationError("rejection requires a reason")
        fields["rejection_reason"] = reason

        with self._tx.transaction() as session:
            updated = self._redemption_repo.transition(
                str(redemption.id),
                redemption.status,
                RedemptionStatus.REJECTED,
                fields,
                session=session,
            )
            if updated is None:
                raise self._lost_race(str(redemption.id))
            self._funds.release(redemption.payee_code, redemption.amount, session=session)
        return updated

    def _approve(
        self, redemption: Redemption, fields: dict[str, Any]
    ) -> tuple[Redemption, Payout]:
        redemption_id = str(redemption.id)
        payout = Payout.new(
            new_object_id(),
            redemption.payee_code,
            redemption.amount,
            redemption.destination,
            utc_now(),
            redemption_id=redemption_id,
            contact=redemption.contact,
        )
        fields["payout_id"] = payout.id

        try:
            with self._tx.transaction() as session:
                updated = self._redemption_repo.transition(
                    redemption_id,
                    redemption.status,
                    RedemptionStatus.APPROVED,
                    fields,
                    session=session,
                )
                if updated is None:
                    raise self._lost_race(redemption_id)
                payout = self._payout_repo.insert(payout, session=session)
        except DuplicateKeyError as exc:
            raise AlreadyLocked("payee already has a payout in flight") from exc
        return updated, payout

    def _complete_manually(
        self,
        redemption: Redemption,
        fields: dict[str, Any],
        external_transaction_id: str | None,
    ) -> Redemption:
        """지급 오케스트레이터를 거치지 않은 수동 송금 완료."""
        if not external_transaction_id:
            raise ValidationError("manual completion requires an external transaction id")

        redemption_id = str(redemption.id)
        fields["external_transaction_id"] = external_transaction_id
        try:
            with self._tx.transaction() as session:
                latest = self._payout_repo.find_latest_for_redemption(
                    redemption_id, session=session
                )
                if latest is not None and latest.status in IN_FLIGHT_PAYOUT_STATUSES:
                    raise InvalidState(
                        "a payout for this redemption is still in flight",
                        payout_id=latest.id,
                    )
                # 마지막 지급이 실패/거절이면 금액은 이미 pending 으로 돌아가 있다
                needs_reserve = (
                    latest is not None and latest.status in _RELEASED_PAYOUT_STATUSES
                )

                # 읽은 뒤 재지급이 연결되었다면 payout_id 가 달라 갱신되지 않는다
                updated = self._redemption_repo.transition(
                    redemption_id,
                    redemption.status,
                    RedemptionStatus.COMPLETED,
                    fields,
                    session=session,
                    expected_payout_id=latest.id if latest is not None else None,
                )
                if updated is None:
                    raise self._lost_race(redemption_id)
                if needs_reserve:
                    self._funds.reserve(
                        redemption.payee_code, redemption.amount, session=session
                    )
                self._funds.commit(redemption.payee_code, redemption.amount, session=session)
                self._transaction_repo.insert(
                    LedgerTransaction(
                        actor_code=redemption.payee_code,
                        beneficiary_code=redemption.payee_code,
                        kind=TransactionKind.PAYOUT,
                        coins=0,
                        currency_amount=redemption.amount,
                        metadata={
                            "redemption_id": redemption_id,
                            "external_transaction_id": external_transaction_id,
                            "manual": True,
                        },
                        created_at=utc_now(),
                    ),
                    session=session,
                )
        except ConcurrencyConflict as exc:
            raise InsufficientFunds(
                "earnings no longer hold the redemption amount"
            ) from exc
        return updated

    @staticmethod
    def _lost_race(redemption_id: str) -> InvalidState:
        logger.error(
            "redemption status changed concurrently",
            extra={"redemption_id": redemption_id},
        )
        return InvalidState(
            "redemption status changed concurrently", redemption_id=redemption_id
        )
