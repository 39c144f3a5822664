"""사용자 코인 지갑 도메인 모델."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class Wallet(BaseModel):
    id: str | None = None
    user_code: str
    coin_balance: int  # 차감 후 음수가 되지 않는다 (관리자 회수 제외)
    created_at: datetime
    updated_at: datetime
