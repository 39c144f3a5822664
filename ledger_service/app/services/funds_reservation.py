"""수익 버킷 예약 프리미티브.

환급 요청과 지급 처리 모두 이 클래스만으로 pending/locked/redeemed 사이를 옮긴다.
- reserve: pending -> locked
- release: locked -> pending
- commit: locked -> redeemed

각 이동은 원천 버킷 잔액을 조건으로 하는 단일 조건부 갱신이며, 매칭되는 문서가 없으면
ConcurrencyConflict 를 던져 호출자의 트랜잭션 스코프 전체가 abort 되도록 한다.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from ..exceptions import ConcurrencyConflict, ValidationError
from ..models.earnings import Earnings, EarningsBucket
from ..repositories.interfaces import EarningsRepositoryInterface


logger = logging.getLogger(__name__)


class FundsReservation:
    def __init__(self, earnings_repo: EarningsRepositoryInterface) -> None:
        self._earnings_repo = earnings_repo

    def reserve(self, payee_code: str, amount: Decimal, session: Any = None) -> Earnings:
        return self._move(
            payee_code, EarningsBucket.PENDING, EarningsBucket.LOCKED, amount, session
        )

    def release(self, payee_code: str, amount: Decimal, session: Any = None) -> Earnings:
        return self._move(
            payee_code, EarningsBucket.LOCKED, EarningsBucket.PENDING, amount, session
        )

    def commit(self, payee_code: str, amount: Decimal, session: Any = None) -> Earnings:
        return self._move(
            payee_code, EarningsBucket.LOCKED, EarningsBucket.REDEEMED, amount, session
        )

    def _move(
        self,
        payee_code: str,
        source: EarningsBucket,
        target: EarningsBucket,
        amount: Decimal,
        session: Any,
    ) -> Earnings:
        if amount <= 0:
            raise ValidationError("amount must be positive", amount=str(amount))

        earnings = self._earnings_repo.move(
            payee_code, source, target, amount, session=session
        )
        if earnings is None:
            logger.warning(
                "earnings move %s->%s of %s did not match",
                source.value,
                target.value,
                amount,
                extra={"payee_code": payee_code},
            )
            raise ConcurrencyConflict(
                f"{source.value} bucket does not hold {amount}",
                payee_code=payee_code,
                source=source.value,
                target=target.value,
            )
        return earnings
