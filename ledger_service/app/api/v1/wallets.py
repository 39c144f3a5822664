"""코인 지갑 API.

채팅/통화 서비스와 결제 처리기가 호출하는 내부 API. 재시도 안전성을 위해 변경 요청은
`Idempotency-Key` 헤더를 받는다.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header, Query

from common.schemas.pagination import PaginatedResponse

from ..schemas.wallets import (
    CallChargeRequest,
    ChatChargeRequest,
    CreditRequest,
    CreditResponse,
    SignupBonusResponse,
    SpendRequest,
    SpendResponse,
    TransactionItem,
    WalletResponse,
)
from ...dependencies import get_ledger_service
from ...exceptions import FeatureDisabled, InsufficientFunds
from ...models.results import SpendRejected, SpendRejectionReason, SpendResult
from ...services.ledger_service import LedgerService


router = APIRouter()

IdempotencyKey = Annotated[str | None, Header(alias="Idempotency-Key")]


def _to_response(result: SpendResult) -> SpendResponse:
    """거절 결과는 원장 예외로 바꿔 공통 에러 응답을 쓴다."""
    if isinstance(result, SpendRejected):
        if result.reason is SpendRejectionReason.FEATURE_DISABLED:
            raise FeatureDisabled(result.message)
        raise InsufficientFunds(result.message, required_coins=result.required_coins)
    return SpendResponse(
        transaction=TransactionItem.from_domain(result.transaction),
        new_balance=result.new_balance,
        beneficiary_share=result.beneficiary_share,
        replayed=result.replayed,
    )


@router.get("/{user_code}", response_model=WalletResponse, summary="코인 잔액 조회")
def get_wallet(
    user_code: str,
    service: LedgerService = Depends(get_ledger_service),
) -> WalletResponse:
    return WalletResponse(user_code=user_code, coin_balance=service.get_balance(user_code))


@router.post("/{user_code}/spend", response_model=SpendResponse, summary="코인 지출")
def spend(
    user_code: str,
    body: SpendRequest,
    idempotency_key: IdempotencyKey = None,
    service: LedgerService = Depends(get_ledger_service),
) -> SpendResponse:
    result = service.debit_and_credit(
        user_code,
        body.beneficiary_code,
        body.coins,
        body.kind,
        metadata=body.metadata,
        idempotency_key=idempotency_key,
        call_type=body.call_type,
    )
    return _to_response(result)


@router.post(
    "/{user_code}/chat-charges",
    response_model=SpendResponse,
    summary="채팅 메시지 요금 차감",
)
def charge_chat(
    user_code: str,
    body: ChatChargeRequest,
    idempotency_key: IdempotencyKey = None,
    service: LedgerService = Depends(get_ledger_service),
) -> SpendResponse:
    result = service.charge_chat_message(
        user_code,
        body.recipient_code,
        chat_id=body.chat_id,
        idempotency_key=idempotency_key,
    )
    return _to_response(result)


@router.post(
    "/{user_code}/call-charges",
    response_model=SpendResponse,
    summary="통화 구간 요금 차감",
)
def charge_call(
    user_code: str,
    body: CallChargeRequest,
    idempotency_key: IdempotencyKey = None,
    service: LedgerService = Depends(get_ledger_service),
) -> SpendResponse:
    """잔액 부족(402)을 받으면 호출자는 통화를 종료해야 한다."""
    result = service.charge_call_tick(
        body.call_id,
        user_code,
        body.responder_code,
        body.call_type,
        body.duration_seconds,
        idempotency_key=idempotency_key,
    )
    return _to_response(result)


@router.post("/{user_code}/credits", response_model=CreditResponse, summary="코인 적립")
def credit(
    user_code: str,
    body: CreditRequest,
    idempotency_key: IdempotencyKey = None,
    service: LedgerService = Depends(get_ledger_service),
) -> CreditResponse:
    metadata = dict(body.metadata)
    if body.external_payment_ref:
        metadata["external_payment_ref"] = body.external_payment_ref
    result = service.credit(
        user_code,
        body.coins,
        body.kind,
        metadata=metadata,
        idempotency_key=idempotency_key or body.external_payment_ref,
    )
    return CreditResponse(
        transaction=TransactionItem.from_domain(result.transaction),
        new_balance=result.new_balance,
        replayed=result.replayed,
    )


@router.post(
    "/{user_code}/signup-bonus",
    response_model=SignupBonusResponse,
    summary="가입 보너스 지급",
)
def grant_signup_bonus(
    user_code: str,
    service: LedgerService = Depends(get_ledger_service),
) -> SignupBonusResponse:
    result = service.grant_signup_bonus(user_code)
    if result is None:
        return SignupBonusResponse(
            granted=False, new_balance=service.get_balance(user_code)
        )
    return SignupBonusResponse(
        granted=not result.replayed,
        new_balance=result.new_balance,
        replayed=result.replayed,
    )


@router.get(
    "/{user_code}/transactions",
    response_model=PaginatedResponse[TransactionItem],
    summary="지갑 거래 내역",
)
def list_transactions(
    user_code: str,
    page: int = Query(1, ge=1, description="조회할 페이지 (1부터 시작)"),
    page_size: int = Query(20, ge=1, le=100, description="페이지당 아이템 개수 (1~100)"),
    service: LedgerService = Depends(get_ledger_service),
) -> PaginatedResponse[TransactionItem]:
    items, total = service.list_transactions(user_code, page, page_size)
    return PaginatedResponse[TransactionItem](
        items=[TransactionItem.from_domain(tx) for tx in items],
        total=total,
        page=page,
        page_size=page_size,
    )
