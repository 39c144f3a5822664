from __future__ import annotations

from pydantic import BaseModel


class PayeeContact(BaseModel):
    """게이트웨이 수취인 등록에 필요한 연락처. 환급/지급 요청 시점의 값을 기록해 둔다."""

    name: str
    email: str | None = None
    phone: str | None = None
