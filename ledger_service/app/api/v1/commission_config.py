from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ..schemas.commission_config import (
    CommissionConfigResponse,
    CommissionConfigUpdateRequest,
)
from ...dependencies import get_config_store
from ...services.config_store import ConfigurationStore


router = APIRouter()


@router.get("", response_model=CommissionConfigResponse, summary="활성 수수료 설정 조회")
def get_commission_config(
    store: ConfigurationStore = Depends(get_config_store),
) -> CommissionConfigResponse:
    return CommissionConfigResponse.from_domain(store.refresh())


@router.put("", response_model=CommissionConfigResponse, summary="수수료 설정 변경")
def update_commission_config(
    body: CommissionConfigUpdateRequest,
    store: ConfigurationStore = Depends(get_config_store),
) -> CommissionConfigResponse:
    config = store.update_config(body.admin_code, body.changes())
    return CommissionConfigResponse.from_domain(config)


@router.get(
    "/history",
    response_model=list[CommissionConfigResponse],
    summary="수수료 설정 변경 이력",
)
def list_commission_config_history(
    limit: int = Query(20, ge=1, le=100),
    store: ConfigurationStore = Depends(get_config_store),
) -> list[CommissionConfigResponse]:
    return [CommissionConfigResponse.from_domain(c) for c in store.list_history(limit)]
