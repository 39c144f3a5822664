"""이벤트 핸들러 패키지."""

from .payout_handler import run_payout_consumer

__all__ = ["run_payout_consumer"]
