"""지급 API (응답자용 + 관리자용)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from common.schemas.pagination import PaginatedResponse

from ..schemas.payouts import (
    DirectPayoutRequest,
    GatewayBalanceResponse,
    PayoutDetail,
    PayoutItem,
    PayoutRejectRequest,
)
from ...dependencies import get_payout_orchestrator
from ...models.payout import PayoutStatus
from ...services.payout_service import PayoutOrchestrator


router = APIRouter()
admin_router = APIRouter()


@router.post("", response_model=PayoutItem, status_code=201, summary="즉시 지급 요청")
def request_payout(
    body: DirectPayoutRequest,
    orchestrator: PayoutOrchestrator = Depends(get_payout_orchestrator),
) -> PayoutItem:
    payout = orchestrator.request_direct_payout(
        body.payee_code, body.destination, amount=body.amount, contact=body.contact
    )
    return PayoutItem.from_domain(payout)


@router.get("", response_model=PaginatedResponse[PayoutItem], summary="응답자 지급 목록")
def list_payouts(
    payee_code: str = Query(..., description="응답자 코드"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    orchestrator: PayoutOrchestrator = Depends(get_payout_orchestrator),
) -> PaginatedResponse[PayoutItem]:
    items, total = orchestrator.list_for_payee(payee_code, page, page_size)
    return PaginatedResponse[PayoutItem](
        items=[PayoutItem.from_domain(p) for p in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{payout_id}", response_model=PayoutItem, summary="지급 조회")
def get_payout(
    payout_id: str,
    orchestrator: PayoutOrchestrator = Depends(get_payout_orchestrator),
) -> PayoutItem:
    return PayoutItem.from_domain(orchestrator.get(payout_id))


# -------- 관리자 --------


@admin_router.get(
    "", response_model=PaginatedResponse[PayoutDetail], summary="전체 지급 목록"
)
def admin_list_payouts(
    status: PayoutStatus | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    orchestrator: PayoutOrchestrator = Depends(get_payout_orchestrator),
) -> PaginatedResponse[PayoutDetail]:
    items, total = orchestrator.list_all(status, page, page_size)
    return PaginatedResponse[PayoutDetail](
        items=[PayoutDetail.from_domain(p) for p in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@admin_router.get(
    "/gateway-balance",
    response_model=GatewayBalanceResponse,
    summary="게이트웨이 가용 잔액",
)
def admin_gateway_balance(
    orchestrator: PayoutOrchestrator = Depends(get_payout_orchestrator),
) -> GatewayBalanceResponse:
    return GatewayBalanceResponse(available_balance=orchestrator.get_gateway_balance())


@admin_router.post(
    "/{payout_id}/process", response_model=PayoutDetail, summary="지급 처리 실행"
)
def admin_process_payout(
    payout_id: str,
    orchestrator: PayoutOrchestrator = Depends(get_payout_orchestrator),
) -> PayoutDetail:
    return PayoutDetail.from_domain(orchestrator.process(payout_id))


@admin_router.post(
    "/{payout_id}/reconcile", response_model=PayoutDetail, summary="지급 결과 대사"
)
def admin_reconcile_payout(
    payout_id: str,
    orchestrator: PayoutOrchestrator = Depends(get_payout_orchestrator),
) -> PayoutDetail:
    return PayoutDetail.from_domain(orchestrator.reconcile(payout_id))


@admin_router.post(
    "/{payout_id}/reject", response_model=PayoutDetail, summary="대기 중 지급 거절"
)
def admin_reject_payout(
    payout_id: str,
    body: PayoutRejectRequest,
    orchestrator: PayoutOrchestrator = Depends(get_payout_orchestrator),
) -> PayoutDetail:
    payout = orchestrator.reject(payout_id, body.admin_code, body.reason)
    return PayoutDetail.from_domain(payout)
