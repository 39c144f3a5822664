from fastapi import APIRouter

from .commission_config import router as commission_config_router
from .earnings import router as earnings_router
from .payouts import admin_router as admin_payouts_router
from .payouts import router as payouts_router
from .redemptions import admin_router as admin_redemptions_router
from .redemptions import router as redemptions_router
from .wallets import router as wallets_router
from .webhooks import router as webhooks_router

api_router = APIRouter()
api_router.include_router(wallets_router, prefix="/wallets", tags=["wallets"])
api_router.include_router(earnings_router, prefix="/earnings", tags=["earnings"])
api_router.include_router(
    redemptions_router, prefix="/redemptions", tags=["redemptions"]
)
api_router.include_router(payouts_router, prefix="/payouts", tags=["payouts"])
api_router.include_router(webhooks_router, prefix="/webhooks", tags=["webhooks"])
api_router.include_router(
    admin_redemptions_router, prefix="/admin/redemptions", tags=["admin"]
)
api_router.include_router(admin_payouts_router, prefix="/admin/payouts", tags=["admin"])
api_router.include_router(
    commission_config_router, prefix="/admin/commission-config", tags=["admin"]
)
