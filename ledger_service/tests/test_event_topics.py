from __future__ import annotations

import pytest

from common.eventbus.core import Event, MaxRetryExceededError, RetryDelays
from common.eventbus.topics import TOPIC_PAYOUT


def test_retry_topic_count_follows_retry_delays() -> None:
    topics = TOPIC_PAYOUT.get_retry_topics()

    assert len(topics) == len(RetryDelays)
    assert topics[0] == "coin-ledger.payout.retry.1"
    assert TOPIC_PAYOUT.get_retry_topic(len(RetryDelays)) == topics[-1]
    assert TOPIC_PAYOUT.dlq() == "coin-ledger.payout.dlq"


def test_retry_beyond_last_topic_goes_to_dlq() -> None:
    with pytest.raises(MaxRetryExceededError):
        TOPIC_PAYOUT.get_retry_topic(len(RetryDelays) + 1)


@pytest.mark.parametrize("max_retry", [0, -1, 99])
def test_event_max_retry_is_clamped_to_retry_topic_count(max_retry: int) -> None:
    assert Event(id="evt-1", payload={}, max_retry=max_retry).max_retry == len(RetryDelays)
