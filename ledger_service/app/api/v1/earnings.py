from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from common.schemas.pagination import PaginatedResponse

from ..schemas.earnings import EarningsResponse
from ..schemas.wallets import TransactionItem
from ...dependencies import get_ledger_service
from ...services.ledger_service import LedgerService


router = APIRouter()


@router.get("/{payee_code}", response_model=EarningsResponse, summary="응답자 수익 조회")
def get_earnings(
    payee_code: str,
    service: LedgerService = Depends(get_ledger_service),
) -> EarningsResponse:
    return EarningsResponse.from_domain(service.get_earnings(payee_code))


@router.get(
    "/{payee_code}/transactions",
    response_model=PaginatedResponse[TransactionItem],
    summary="수익 적립 내역",
)
def list_earning_transactions(
    payee_code: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    service: LedgerService = Depends(get_ledger_service),
) -> PaginatedResponse[TransactionItem]:
    items, total = service.list_earning_transactions(payee_code, page, page_size)
    return PaginatedResponse[TransactionItem](
        items=[TransactionItem.from_domain(tx) for tx in items],
        total=total,
        page=page,
        page_size=page_size,
    )
