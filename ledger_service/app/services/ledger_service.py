"""원장 코어 서비스.

코인 차감 + 수취인 적립, 코인 적립(구매/보너스/환불)을 처리한다.
모든 변경은 잔액/수익 갱신과 불변 거래 기록을 하나의 트랜잭션 스코프에서 함께 커밋한다.
"""

from __future__ import annotations

import logging
from typing import Any

from pymongo.errors import DuplicateKeyError

from common.mongo.transaction import TransactionRunnerInterface
from common.types.datetime import utc_now

from ..exceptions import InsufficientFunds, ValidationError
from ..models.commission_config import CallType, Feature, feature_for_call
from ..models.earnings import EarningsSummary
from ..models.money import ZERO, commission_share
from ..models.results import (
    CreditResult,
    SpendRejected,
    SpendRejectionReason,
    SpendResult,
    SpendSucceeded,
)
from ..models.transaction import (
    CREDIT_KINDS,
    SPEND_KINDS,
    LedgerTransaction,
    TransactionKind,
)
from ..repositories.interfaces import (
    EarningsRepositoryInterface,
    TransactionRepositoryInterface,
    WalletRepositoryInterface,
)
from .config_store import ConfigurationStore
from .event_publisher import LedgerEventPublisher


logger = logging.getLogger(__name__)

SIGNUP_BONUS_KEY_PREFIX = "signup-bonus:"


class LedgerService:
    """코인 잔액과 수익 적립에 대한 비즈니스 로직."""

    def __init__(
        self,
        wallet_repo: WalletRepositoryInterface,
        earnings_repo: EarningsRepositoryInterface,
        transaction_repo: TransactionRepositoryInterface,
        config_store: ConfigurationStore,
        tx_runner: TransactionRunnerInterface,
        events: LedgerEventPublisher,
    ) -> None:
        self._wallet_repo = wallet_repo
        self._earnings_repo = earnings_repo
        self._transaction_repo = transaction_repo
        self._config_store = config_store
        self._tx = tx_runner
        self._events = events

    def debit_and_credit(
        self,
        spender_code: str,
        beneficiary_code: str | None,
        coins: int,
        kind: TransactionKind,
        metadata: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
        call_type: CallType | None = None,
    ) -> SpendResult:
        """사용자 코인을 차감하고 수취인 pending 수익을 적립한다.

        잔액 부족과 기능 비활성은 SpendRejected 로 돌려준다. 저장소 오류는 그대로 전파되며,
        재시도는 호출자가 같은 idempotency_key 로 해야 한다.
        """
        if coins <= 0:
            raise ValidationError("coins must be positive", coins=coins)
        if kind not in SPEND_KINDS:
            raise ValidationError(f"{kind.value} is not a spend kind")
        if kind is TransactionKind.SPEND_CALL and call_type is None:
            raise ValidationError("call_type is required for call spends")

        if idempotency_key:
            replayed = self._replay_spend(idempotency_key, spender_code)
            if replayed is not None:
                return replayed

        # 설정 조회는 트랜잭션 스코프를 열기 전에 끝낸다.
        config = self._config_store.get_active_config()
        if kind is TransactionKind.SPEND_CHAT:
            feature = Feature.CHAT
        else:
            feature = feature_for_call(call_type)  # type: ignore[arg-type]
        if not config.is_enabled(feature):
            return SpendRejected(
                reason=SpendRejectionReason.FEATURE_DISABLED,
                message=f"{feature.value} is currently disabled",
            )

        percent = config.commission_percent_for(call_type)
        share = (
            commission_share(coins, config.conversion_rate, percent)
            if beneficiary_code
            else ZERO
        )

        tx_metadata = dict(metadata or {})
        tx_metadata["conversion_rate"] = str(config.conversion_rate)
        tx_metadata["commission_percent"] = str(percent)
        if call_type is not None:
            tx_metadata["call_type"] = call_type.value

        try:
            with self._tx.transaction() as session:
                wallet = self._wallet_repo.try_debit(spender_code, coins, session=session)
                if wallet is None:
                    # 스코프를 abort 시키기 위해 예외로 빠져나간다
                    raise InsufficientFunds("insufficient coin balance")

                if beneficiary_code and share > 0:
                    self._earnings_repo.add_pending(beneficiary_code, share, session=session)

                tx = self._transaction_repo.insert(
                    LedgerTransaction(
                        actor_code=spender_code,
                        beneficiary_code=beneficiary_code,
                        kind=kind,
                        coins=coins,
                        currency_amount=share,
                        balance_after=wallet.coin_balance,
                        idempotency_key=idempotency_key,
                        metadata=tx_metadata,
                        created_at=utc_now(),
                    ),
                    session=session,
                )
        except InsufficientFunds:
            logger.info(
                "spend rejected: insufficient funds (%d coins)",
                coins,
                extra={"user_code": spender_code},
            )
            return SpendRejected(
                reason=SpendRejectionReason.INSUFFICIENT_FUNDS,
                message="insufficient coin balance",
                required_coins=coins,
            )
        except DuplicateKeyError:
            # 동시에 같은 키로 들어온 요청이 먼저 커밋했다
            if idempotency_key:
                replayed = self._replay_spend(idempotency_key, spender_code)
                if replayed is not None:
                    return replayed
            raise

        logger.info(
            "spend committed: %d coins (%s), share=%s",
            coins,
            kind.value,
            share,
            extra={"user_code": spender_code, "payee_code": beneficiary_code},
        )
        self._events.spend_committed(tx, wallet.coin_balance)
        return SpendSucceeded(
            transaction=tx,
            new_balance=wallet.coin_balance,
            beneficiary_share=share,
        )

    def credit(
        self,
        user_code: str,
        coins: int,
        kind: TransactionKind,
        metadata: dict[str, Any] | None = None,
        idempotency_key: str | None = None,
    ) -> CreditResult:
        """지출 측이 없는 적립. 음수 coins 는 관리자 회수로 동일하게 기록된다."""
        if coins == 0:
            raise ValidationError("coins must not be zero")
        if kind not in CREDIT_KINDS:
            raise ValidationError(f"{kind.value} is not a credit kind")

        if idempotency_key:
            replayed = self._replay_credit(idempotency_key, user_code)
            if replayed is not None:
                return replayed

        try:
            with self._tx.transaction() as session:
                wallet = self._wallet_repo.credit(user_code, coins, session=session)
                tx = self._transaction_repo.insert(
                    LedgerTransaction(
                        actor_code=user_code,
                        kind=kind,
                        coins=coins,
                        balance_after=wallet.coin_balance,
                        idempotency_key=idempotency_key,
                        metadata=dict(metadata or {}),
                        created_at=utc_now(),
                    ),
                    session=session,
                )
        except DuplicateKeyError:
            if idempotency_key:
                replayed = self._replay_credit(idempotency_key, user_code)
                if replayed is not None:
                    return replayed
            raise

        if coins < 0:
            logger.warning(
                "coins reversed: %d (%s)", coins, kind.value, extra={"user_code": user_code}
            )
        else:
            logger.info(
                "coins credited: %d (%s)", coins, kind.value, extra={"user_code": user_code}
            )
        self._events.coins_credited(tx, wallet.coin_balance)
        return CreditResult(transaction=tx, new_balance=wallet.coin_balance)

    def charge_chat_message(
        self,
        sender_code: str,
        recipient_code: str,
        chat_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> SpendResult:
        """채팅 메시지 1건 요금을 차감한다."""
        config = self._config_store.get_active_config()
        metadata: dict[str, Any] = {}
        if chat_id:
            metadata["chat_id"] = chat_id
        return self.debit_and_credit(
            sender_code,
            recipient_code,
            config.chat_coins_per_message,
            TransactionKind.SPEND_CHAT,
            metadata=metadata,
            idempotency_key=idempotency_key,
        )

    def charge_call_tick(
        self,
        call_id: str,
        user_code: str,
        responder_code: str,
        call_type: CallType,
        duration_seconds: int,
        idempotency_key: str | None = None,
    ) -> SpendResult:
        """통화 구간 요금. ceil(분당 요금 / 60 x 초) 코인을 차감한다.

        잔액 부족 결과를 받은 호출자는 통화를 종료해야 한다.
        """
        if duration_seconds <= 0:
            raise ValidationError("duration_seconds must be positive")

        config = self._config_store.get_active_config()
        rate = config.call_rate_per_minute(call_type)
        coins = -(-rate * duration_seconds // 60)
        return self.debit_and_credit(
            user_code,
            responder_code,
            coins,
            TransactionKind.SPEND_CALL,
            metadata={"call_id": call_id, "duration_seconds": duration_seconds},
            idempotency_key=idempotency_key,
            call_type=call_type,
        )

    def grant_signup_bonus(self, user_code: str) -> CreditResult | None:
        """가입 보너스. 사용자당 한 번만 지급되도록 고정 멱등 키를 쓴다."""
        config = self._config_store.get_active_config()
        if config.initial_user_coins <= 0:
            return None
        return self.credit(
            user_code,
            config.initial_user_coins,
            TransactionKind.BONUS,
            metadata={"reason": "signup"},
            idempotency_key=f"{SIGNUP_BONUS_KEY_PREFIX}{user_code}",
        )

    def get_balance(self, user_code: str) -> int:
        wallet = self._wallet_repo.get(user_code)
        return wallet.coin_balance if wallet else 0

    def get_earnings(self, payee_code: str) -> EarningsSummary:
        config = self._config_store.get_active_config()
        earnings = self._earnings_repo.get(payee_code)
        pending = earnings.pending if earnings else ZERO
        return EarningsSummary(
            payee_code=payee_code,
            total=earnings.total if earnings else ZERO,
            pending=pending,
            locked=earnings.locked if earnings else ZERO,
            redeemed=earnings.redeemed if earnings else ZERO,
            minimum_redeemable=config.minimum_redeemable,
            can_redeem=pending > 0 and pending >= config.minimum_redeemable,
        )

    def list_transactions(
        self, user_code: str, page: int = 1, page_size: int = 20
    ) -> tuple[list[LedgerTransaction], int]:
        return self._transaction_repo.list_by_actor(user_code, page, page_size)

    def list_earning_transactions(
        self, payee_code: str, page: int = 1, page_size: int = 20
    ) -> tuple[list[LedgerTransaction], int]:
        return self._transaction_repo.list_by_beneficiary(payee_code, page, page_size)

    # 멱등 재요청 ------------------------------------------------------------
    def _replay_spend(self, idempotency_key: str, spender_code: str) -> SpendSucceeded | None:
        existing = self._find_replay(idempotency_key, spender_code, SPEND_KINDS)
        if existing is None:
            return None
        return SpendSucceeded(
            transaction=existing,
            new_balance=existing.balance_after or 0,
            beneficiary_share=existing.currency_amount,
            replayed=True,
        )

    def _replay_credit(self, idempotency_key: str, user_code: str) -> CreditResult | None:
        existing = self._find_replay(idempotency_key, user_code, CREDIT_KINDS)
        if existing is None:
            return None
        return CreditResult(
            transaction=existing,
            new_balance=existing.balance_after or 0,
            replayed=True,
        )

    def _find_replay(
        self,
        idempotency_key: str,
        actor_code: str,
        kinds: frozenset[TransactionKind],
    ) -> LedgerTransaction | None:
        existing = self._transaction_repo.find_by_idempotency_key(idempotency_key)
        if existing is None:
            return None
        if existing.actor_code != actor_code or existing.kind not in kinds:
            raise ValidationError(
                "idempotency key was already used for a different request",
                idempotency_key=idempotency_key,
            )
        logger.info(
            "idempotent replay of transaction %s",
            existing.id,
            extra={"idempotency_key": idempotency_key},
        )
        return existing

