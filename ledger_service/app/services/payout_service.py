"""지급 오케스트레이터.

지급 상태: pending -> processing -> {completed, failed}, pending -> rejected (관리자).

- 송금 ID 는 지급 ID 에서 결정적으로 만들어지므로 같은 지급을 몇 번 다시 처리해도
  게이트웨이에는 하나의 송금만 생긴다.
- 명시적 실패(GatewayFailure)만 보상(locked -> pending)한다. 결과를 알 수 없는 경우
  (GatewayAmbiguous)는 processing 으로 남겨 두고 웹훅이나 대사에서 확정한다.
- processing 인 지급만 완료/실패로 바꿀 수 있다. 이 조건이 locked 금액을 건드리는 주체를
  하나로 제한한다.
"""

from __future__ import annotations

import logging
from datetime import timedelta
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
    GatewayAmbiguous,
    GatewayError,
    GatewayFailure,
    InsufficientFunds,
    InvalidDestination,
    InvalidState,
    NotFound,
    ValidationError,
)
from ..gateway.interfaces import (
    FAILED_TRANSFER_STATUSES,
    TransferGatewayInterface,
    TransferStatus,
)
from ..gateway.webhooks import (
    TransferOutcome,
    UnknownTransferWebhook,
    parse_transfer_webhook,
)
from ..models.money import ZERO, to_money
from ..models.payee import PayeeContact
from ..models.payout import (
    TERMINAL_PAYOUT_STATUSES,
    Payout,
    PayoutStatus,
    payee_id_for,
)
from ..models.redemption import RedemptionStatus, is_valid_destination
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

DEFAULT_STALE_SECONDS = 600
DEFAULT_STALE_BATCH_SIZE = 50

# 다시 지급을 만들 수 있는 마지막 지급 상태 (locked 금액이 이미 pending 으로 돌아갔다)
RETRYABLE_PAYOUT_STATUSES = frozenset({PayoutStatus.FAILED, PayoutStatus.REJECTED})


class PayoutOrchestrator:
    def __init__(
        self,
        payout_repo: PayoutRepositoryInterface,
        redemption_repo: RedemptionRepositoryInterface,
        earnings_repo: EarningsRepositoryInterface,
        transaction_repo: TransactionRepositoryInterface,
        funds: FundsReservation,
        gateway: TransferGatewayInterface,
        config_store: ConfigurationStore,
        tx_runner: TransactionRunnerInterface,
        events: LedgerEventPublisher,
    ) -> None:
        self._payout_repo = payout_repo
        self._redemption_repo = redemption_repo
        self._earnings_repo = earnings_repo
        self._transaction_repo = transaction_repo
        self._funds = funds
        self._gateway = gateway
        self._config_store = config_store
        self._tx = tx_runner
        self._events = events

    # 처리 --------------------------------------------------------------------
    def process(self, payout_id: str) -> Payout:
        """지급을 게이트웨이로 보낸다. 몇 번 호출해도 송금은 한 번만 일어난다."""
        payout = self.get(payout_id)
        if payout.status in TERMINAL_PAYOUT_STATUSES:
            logger.info(
                "payout already %s, nothing to do",
                payout.status.value,
                extra={"payout_id": payout_id},
            )
            return payout
        if payout.status is PayoutStatus.PROCESSING:
            # 이전 시도의 결과를 모르므로 게이트웨이에 먼저 물어본다
            return self.reconcile(payout_id)

        claimed = self._payout_repo.transition(
            payout_id,
            [PayoutStatus.PENDING],
            PayoutStatus.PROCESSING,
            {"last_error": None},
            increment_attempts=True,
        )
        if claimed is None:
            logger.info(
                "payout claimed by another worker", extra={"payout_id": payout_id}
            )
            return self.get(payout_id)

        self._events.payout_status_changed(claimed, PayoutStatus.PENDING)
        return self._drive_transfer(claimed)

    def reconcile(self, payout_id: str) -> Payout:
        """processing 지급의 실제 결과를 게이트웨이에서 조회해 확정한다."""
        payout = self.get(payout_id)
        if payout.status is not PayoutStatus.PROCESSING:
            raise InvalidState(
                f"only processing payouts can be reconciled (status={payout.status.value})",
                payout_id=payout_id,
            )

        try:
            result = self._gateway.get_transfer_status(payout.transfer_id)
        except GatewayError as exc:
            logger.warning(
                "transfer status query failed, leaving payout in processing: %s",
                exc,
                extra={"payout_id": payout_id, "transfer_id": payout.transfer_id},
            )
            return payout

        if result.status is TransferStatus.SUCCESS:
            return self._complete(payout, result.reference_id, result.raw)
        if result.status in FAILED_TRANSFER_STATUSES:
            return self._fail(
                payout, f"transfer {result.status.value.lower()} at gateway", result.raw
            )
        if result.status is TransferStatus.NOT_FOUND:
            logger.warning(
                "transfer unknown to gateway, re-driving",
                extra={"payout_id": payout_id, "transfer_id": payout.transfer_id},
            )
            return self._drive_transfer(payout)

        logger.info(
            "transfer still pending at gateway",
            extra={"payout_id": payout_id, "transfer_id": payout.transfer_id},
        )
        return payout

    def reconcile_stale(
        self,
        older_than_seconds: int = DEFAULT_STALE_SECONDS,
        limit: int = DEFAULT_STALE_BATCH_SIZE,
    ) -> int:
        """오래 갱신되지 않은 지급을 다시 처리한다.

        processing 은 대사하고, pending 은 `payout.requested` 이벤트가 유실된 경우이므로 처리를
        다시 시작한다. 한 건의 실패가 나머지 배치를 막지 않는다.
        """
        cutoff = utc_now() - timedelta(seconds=older_than_seconds)
        stale = self._payout_repo.list_stale(
            [PayoutStatus.PROCESSING, PayoutStatus.PENDING], cutoff, limit
        )
        for payout in stale:
            try:
                if payout.status is PayoutStatus.PENDING:
                    self.process(payout.id)
                else:
                    self.reconcile(payout.id)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "stale payout reconciliation failed",
                    extra={"payout_id": payout.id},
                )
        if stale:
            logger.info("reconciled %d stale payouts", len(stale))
        return len(stale)

    def apply_transfer_webhook(self, payload: Any) -> Payout | None:
        event = parse_transfer_webhook(payload)
        if isinstance(event, UnknownTransferWebhook):
            logger.warning("ignoring unrecognized transfer webhook: %s", event.reason)
            return None

        payout = self._payout_repo.find_by_transfer_id(event.transfer_id)
        if payout is None:
            logger.warning(
                "webhook for unknown transfer ignored",
                extra={"transfer_id": event.transfer_id},
            )
            return None
        if payout.status is not PayoutStatus.PROCESSING:
            logger.info(
                "webhook %s for %s payout ignored",
                event.event_name or event.outcome.value,
                payout.status.value,
                extra={"payout_id": payout.id, "transfer_id": event.transfer_id},
            )
            return payout

        if event.outcome is TransferOutcome.SUCCESS:
            return self._complete(
                payout, event.reference_id or payout.gateway_reference_id, event.raw
            )
        if event.outcome in (TransferOutcome.FAILED, TransferOutcome.REVERSED):
            reason = event.reason or event.event_name or event.outcome.value
            return self._fail(payout, f"transfer {event.outcome.value}: {reason}", event.raw)
        return payout

    # 생성 / 관리자 조작 ---------------------------------------------------------
    def request_direct_payout(
        self,
        payee_code: str,
        destination: str,
        amount: Decimal | None = None,
        contact: PayeeContact | None = None,
    ) -> Payout:
        """환급 요청 없이 바로 지급을 만든다. 금액을 생략하면 pending 전액."""
        if not is_valid_destination(destination):
            raise InvalidDestination("destination must be a valid UPI handle")

        config = self._config_store.get_active_config()
        earnings = self._earnings_repo.get(payee_code)
        pending = earnings.pending if earnings else ZERO
        amount = to_money(amount) if amount is not None else pending
        if amount <= 0 or amount < config.minimum_redeemable:
            raise BelowMinimum(
                f"minimum {config.minimum_redeemable} required for payout",
                amount=str(amount),
                minimum=str(config.minimum_redeemable),
            )
        if pending < amount:
            raise InsufficientFunds(
                "requested amount exceeds pending earnings",
                pending=str(pending),
                requested=str(amount),
            )

        payout = Payout.new(
            new_object_id(), payee_code, amount, destination, utc_now(), contact=contact
        )
        try:
            with self._tx.transaction() as session:
                payout = self._payout_repo.insert(payout, session=session)
                self._funds.reserve(payee_code, amount, session=session)
        except DuplicateKeyError as exc:
            raise AlreadyLocked("payee already has a payout in flight") from exc
        except ConcurrencyConflict as exc:
            raise InsufficientFunds("pending earnings changed concurrently") from exc

        logger.info(
            "direct payout requested: %s",
            amount,
            extra={"payee_code": payee_code, "payout_id": payout.id},
        )
        self._events.payout_requested(payout)
        return payout

    def retry_redemption_payout(self, redemption_id: str) -> Payout:
        """마지막 지급이 실패한 승인 상태 환급에 대해 새 지급을 만든다."""
        redemption = self._redemption_repo.get(redemption_id)
        if redemption is None:
            raise NotFound("redemption not found", redemption_id=redemption_id)
        if redemption.status is not RedemptionStatus.APPROVED:
            raise InvalidState(
                f"redemption is {redemption.status.value}, expected approved",
                redemption_id=redemption_id,
            )
        latest = self._payout_repo.find_latest_for_redemption(redemption_id)
        if latest is not None and latest.status not in RETRYABLE_PAYOUT_STATUSES:
            raise InvalidState(
                f"latest payout is {latest.status.value}, nothing to retry",
                payout_id=latest.id,
            )

        payout = Payout.new(
            new_object_id(),
            redemption.payee_code,
            redemption.amount,
            redemption.destination,
            utc_now(),
            redemption_id=redemption_id,
            contact=redemption.contact,
        )
        expected_payout_id = latest.id if latest is not None else redemption.payout_id
        try:
            with self._tx.transaction() as session:
                payout = self._payout_repo.insert(payout, session=session)
                self._funds.reserve(redemption.payee_code, redemption.amount, session=session)
                # 확인 이후 수동 완료나 다른 재지급이 끼어들었다면 연결되지 않는다
                attached = self._redemption_repo.attach_payout(
                    redemption_id, payout.id, expected_payout_id, session=session
                )
                if attached is None:
                    logger.error(
                        "redemption changed while retrying its payout",
                        extra={"redemption_id": redemption_id},
                    )
                    raise InvalidState(
                        "redemption changed concurrently, payout not retried",
                        redemption_id=redemption_id,
                    )
        except DuplicateKeyError as exc:
            raise AlreadyLocked("payee already has a payout in flight") from exc
        except ConcurrencyConflict as exc:
            raise InsufficientFunds(
                "pending earnings no longer cover the redemption"
            ) from exc

        logger.info(
            "redemption payout retried",
            extra={"redemption_id": redemption_id, "payout_id": payout.id},
        )
        self._events.payout_requested(payout)
        return payout

    def reject(self, payout_id: str, admin_code: str, reason: str) -> Payout:
        if not reason:
            raise ValidationError("rejection requires a reason")
        payout = self.get(payout_id)
        if payout.status is not PayoutStatus.PENDING:
            raise InvalidState(
                f"only pending payouts can be rejected (status={payout.status.value})",
                payout_id=payout_id,
            )

        with self._tx.transaction() as session:
            updated = self._payout_repo.transition(
                payout_id,
                [PayoutStatus.PENDING],
                PayoutStatus.REJECTED,
                {"processed_by": admin_code, "rejection_reason": reason},
                session=session,
            )
            if updated is None:
                raise InvalidState(
                    "payout status changed concurrently", payout_id=payout_id
                )
            self._funds.release(payout.payee_code, payout.amount, session=session)

        logger.info(
            "payout rejected by %s: %s",
            admin_code,
            reason,
            extra={"payout_id": payout_id, "payee_code": payout.payee_code},
        )
        self._events.payout_status_changed(updated, PayoutStatus.PENDING)
        return updated

    # 조회 --------------------------------------------------------------------
    def get(self, payout_id: str) -> Payout:
        payout = self._payout_repo.get(payout_id)
        if payout is None:
            raise NotFound("payout not found", payout_id=payout_id)
        return payout

    def list_for_payee(
        self, payee_code: str, page: int = 1, page_size: int = 20
    ) -> tuple[list[Payout], int]:
        return self._payout_repo.list_by_payee(payee_code, page, page_size)

    def list_all(
        self,
        status: PayoutStatus | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Payout], int]:
        return self._payout_repo.list_all(status, page, page_size)

    def get_gateway_balance(self) -> Decimal:
        return self._gateway.get_account_balance()

    # 내부 --------------------------------------------------------------------
    def _drive_transfer(self, payout: Payout) -> Payout:
        """processing 지급에 대해 수취인 등록과 송금 요청을 수행한다."""
        payee_id = payee_id_for(payout.payee_code)
        contact = payout.contact or PayeeContact(name=payout.payee_code)

        try:
            self._gateway.register_payee(payee_id, contact, payout.destination)
        except GatewayError as exc:
            # 송금 요청 전 단계이므로 결과가 불명확해도 돈은 움직이지 않았다
            return self._fail(payout, f"payee registration failed: {exc}", exc.response)

        try:
            receipt = self._gateway.request_transfer(
                payout.transfer_id,
                payee_id,
                payout.amount,
                remarks=f"Payout {payout.id}",
            )
        except GatewayFailure as exc:
            return self._fail(payout, str(exc), exc.response)
        except GatewayAmbiguous as exc:
            return self._mark_in_doubt(payout, str(exc), exc.response)

        if receipt.status is TransferStatus.SUCCESS:
            return self._complete(payout, receipt.reference_id, receipt.raw)
        if receipt.status in FAILED_TRANSFER_STATUSES:
            return self._fail(
                payout, f"transfer {receipt.status.value.lower()} at gateway", receipt.raw
            )

        updated = self._payout_repo.transition(
            payout.id,
            [PayoutStatus.PROCESSING],
            PayoutStatus.PROCESSING,
            {"gateway_reference_id": receipt.reference_id, "gateway_response": receipt.raw},
        )
        logger.info(
            "transfer accepted, awaiting confirmation",
            extra={"payout_id": payout.id, "transfer_id": payout.transfer_id},
        )
        return updated or self.get(payout.id)

    def _complete(
        self,
        payout: Payout,
        reference_id: str | None,
        raw: dict[str, Any] | None,
    ) -> Payout:
        now = utc_now()
        redemption = None
        with self._tx.transaction() as session:
            updated = self._payout_repo.transition(
                payout.id,
                [PayoutStatus.PROCESSING],
                PayoutStatus.COMPLETED,
                {
                    "gateway_reference_id": reference_id,
                    "gateway_response": raw,
                    "last_error": None,
                    "completed_at": now,
                },
                session=session,
            )
            if updated is not None:
                self._funds.commit(payout.payee_code, payout.amount, session=session)
                if payout.redemption_id:
                    redemption = self._redemption_repo.transition(
                        payout.redemption_id,
                        RedemptionStatus.APPROVED,
                        RedemptionStatus.COMPLETED,
                        {
                            "external_transaction_id": reference_id or payout.transfer_id,
                            "processed_at": now,
                        },
                        session=session,
                    )
                    if redemption is None:
                        logger.error(
                            "redemption was not approved when its payout completed",
                            extra={
                                "payout_id": payout.id,
                                "redemption_id": payout.redemption_id,
                            },
                        )
                self._transaction_repo.insert(
                    LedgerTransaction(
                        actor_code=payout.payee_code,
                        beneficiary_code=payout.payee_code,
                        kind=TransactionKind.PAYOUT,
                        coins=0,
                        currency_amount=payout.amount,
                        metadata={
                            "payout_id": payout.id,
                            "transfer_id": payout.transfer_id,
                            "gateway_reference_id": reference_id,
                            "redemption_id": payout.redemption_id,
                        },
                        created_at=now,
                    ),
                    session=session,
                )

        if updated is None:
            # 웹훅과 대사가 동시에 확정한 경우
            return self.get(payout.id)

        logger.info(
            "payout completed: %s",
            payout.amount,
            extra={
                "payout_id": payout.id,
                "transfer_id": payout.transfer_id,
                "payee_code": payout.payee_code,
            },
        )
        self._events.payout_status_changed(updated, PayoutStatus.PROCESSING)
        if redemption is not None:
            self._events.redemption_status_changed(
                redemption, RedemptionStatus.APPROVED, None
            )
        return updated

    def _fail(
        self,
        payout: Payout,
        error: str,
        raw: dict[str, Any] | None,
    ) -> Payout:
        with self._tx.transaction() as session:
            updated = self._payout_repo.transition(
                payout.id,
                [PayoutStatus.PROCESSING],
                PayoutStatus.FAILED,
                {"last_error": error, "gateway_response": raw},
                session=session,
            )
            if updated is not None:
                self._funds.release(payout.payee_code, payout.amount, session=session)

        if updated is None:
            return self.get(payout.id)

        logger.warning(
            "payout failed, funds released: %s",
            error,
            extra={
                "payout_id": payout.id,
                "transfer_id": payout.transfer_id,
                "payee_code": payout.payee_code,
            },
        )
        self._events.payout_status_changed(updated, PayoutStatus.PROCESSING)
        return updated

    def _mark_in_doubt(
        self,
        payout: Payout,
        error: str,
        raw: dict[str, Any] | None,
    ) -> Payout:
        fields: dict[str, Any] = {"last_error": error}
        if raw is not None:
            fields["gateway_response"] = raw
        updated = self._payout_repo.transition(
            payout.id, [PayoutStatus.PROCESSING], PayoutStatus.PROCESSING, fields
        )
        logger.warning(
            "transfer outcome unknown, left for reconciliation: %s",
            error,
            extra={"payout_id": payout.id, "transfer_id": payout.transfer_id},
        )
        return updated or self.get(payout.id)
