from __future__ import annotations

from .core import Topic


TOPIC_LEDGER = Topic("coin-ledger.ledger")
TOPIC_REDEMPTION = Topic("coin-ledger.redemption")
TOPIC_PAYOUT = Topic("coin-ledger.payout")

ALL_TOPICS: list[Topic] = [
    TOPIC_LEDGER,
    TOPIC_REDEMPTION,
    TOPIC_PAYOUT,
]
