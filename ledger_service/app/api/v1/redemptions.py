"""환급 요청 API (응답자용 + 관리자용)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from common.schemas.pagination import PaginatedResponse

from ..schemas.payouts import PayoutItem
from ..schemas.redemptions import (
    RedemptionCreateRequest,
    RedemptionItem,
    RedemptionStatsItem,
    RedemptionStatusUpdateRequest,
)
from ...dependencies import get_payout_orchestrator, get_redemption_service
from ...models.redemption import RedemptionStatus
from ...services.payout_service import PayoutOrchestrator
from ...services.redemption_service import RedemptionService


router = APIRouter()
admin_router = APIRouter()


@router.post("", response_model=RedemptionItem, status_code=201, summary="환급 요청")
def create_redemption(
    body: RedemptionCreateRequest,
    service: RedemptionService = Depends(get_redemption_service),
) -> RedemptionItem:
    redemption = service.create_request(
        body.payee_code, body.amount, body.destination, contact=body.contact
    )
    return RedemptionItem.from_domain(redemption)


@router.get(
    "",
    response_model=PaginatedResponse[RedemptionItem],
    summary="응답자 환급 요청 목록",
)
def list_redemptions(
    payee_code: str = Query(..., description="응답자 코드"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    service: RedemptionService = Depends(get_redemption_service),
) -> PaginatedResponse[RedemptionItem]:
    items, total = service.list_for_payee(payee_code, page, page_size)
    return PaginatedResponse[RedemptionItem](
        items=[RedemptionItem.from_domain(r) for r in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{redemption_id}", response_model=RedemptionItem, summary="환급 요청 조회")
def get_redemption(
    redemption_id: str,
    service: RedemptionService = Depends(get_redemption_service),
) -> RedemptionItem:
    return RedemptionItem.from_domain(service.get(redemption_id))


# -------- 관리자 --------


@admin_router.get(
    "",
    response_model=PaginatedResponse[RedemptionItem],
    summary="전체 환급 요청 목록",
)
def admin_list_redemptions(
    status: RedemptionStatus | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    service: RedemptionService = Depends(get_redemption_service),
) -> PaginatedResponse[RedemptionItem]:
    items, total = service.list_all(status, page, page_size)
    return PaginatedResponse[RedemptionItem](
        items=[RedemptionItem.from_domain(r) for r in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@admin_router.get(
    "/stats", response_model=list[RedemptionStatsItem], summary="상태별 환급 통계"
)
def admin_redemption_stats(
    service: RedemptionService = Depends(get_redemption_service),
) -> list[RedemptionStatsItem]:
    return [RedemptionStatsItem.from_domain(s) for s in service.stats()]


@admin_router.patch(
    "/{redemption_id}/status",
    response_model=RedemptionItem,
    summary="환급 요청 상태 변경",
)
def admin_update_redemption_status(
    redemption_id: str,
    body: RedemptionStatusUpdateRequest,
    service: RedemptionService = Depends(get_redemption_service),
) -> RedemptionItem:
    if body.status is RedemptionStatus.COMPLETED:
        reason_or_txn_id = body.external_transaction_id
    else:
        reason_or_txn_id = body.reason
    redemption = service.update_status(
        redemption_id,
        body.status,
        body.admin_code,
        reason_or_txn_id=reason_or_txn_id,
        notes=body.notes,
    )
    return RedemptionItem.from_domain(redemption)


@admin_router.post(
    "/{redemption_id}/retry-payout",
    response_model=PayoutItem,
    status_code=201,
    summary="실패한 환급 지급 재시도",
)
def admin_retry_redemption_payout(
    redemption_id: str,
    orchestrator: PayoutOrchestrator = Depends(get_payout_orchestrator),
) -> PayoutItem:
    return PayoutItem.from_domain(orchestrator.retry_redemption_payout(redemption_id))
