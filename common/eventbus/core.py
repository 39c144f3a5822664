from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


# 목록의 길이가 재시도 토픽(.retry.1 ~ .retry.N) 수와 최대 재시도 횟수를 정한다.
# 재시도 토픽은 대기 없이 바로 소비된다.
RetryDelays: list[float] = [
    30.0,
    120.0,
    600.0,
    1800.0,
]


class MaxRetryExceededError(Exception):
    """최대 재시도 횟수를 초과한 경우 사용되는 예외."""


@dataclass(slots=True)
class Event:
    """Kafka 메시지의 메타데이터와 페이로드를 표현하는 이벤트.

    payload 는 JSON 직렬화 가능한 dict 를 담고, 실제 인코딩/디코딩은 Kafka I/O 레이어가 담당한다.
    """

    id: str
    payload: Any
    retry: int = 0
    max_retry: int = 0
    last_error: str | None = None

    def __post_init__(self) -> None:
        if self.max_retry <= 0 or self.max_retry > len(RetryDelays):
            self.max_retry = len(RetryDelays)


@dataclass(frozen=True, slots=True)
class Topic:
    base: str

    def dlq(self) -> str:
        return f"{self.base}.dlq"

    def get_retry_topics(self) -> list[str]:
        return [
            f"{self.base}.retry.{index}" for index in range(1, len(RetryDelays) + 1)
        ]

    def get_retry_topic(self, retry_count: int) -> str:
        if retry_count <= 0 or retry_count > len(RetryDelays):
            raise MaxRetryExceededError()
        return f"{self.base}.retry.{retry_count}"


class EventPublisherInterface(Protocol):
    """서비스 레이어가 의존하는 최소 발행 계약. 테스트에서는 가짜 구현으로 대체한다."""

    def publish(self, topic: str, event: Event) -> None:  # pragma: no cover - Protocol
        ...
