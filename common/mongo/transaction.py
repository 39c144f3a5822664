"""MongoDB multi-document 트랜잭션 스코프.

서비스 레이어는 `TransactionRunnerInterface` 에만 의존하고, 세션은 리포지토리 메서드의
`session` 인자로 그대로 흘려보낸다.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, ContextManager, Iterator, Protocol

from pymongo import MongoClient
from pymongo.client_session import ClientSession
from pymongo.read_concern import ReadConcern
from pymongo.read_preferences import ReadPreference
from pymongo.write_concern import WriteConcern

from .config import get_transaction_max_commit_ms


class TransactionRunnerInterface(Protocol):
    def transaction(self) -> ContextManager[Any]:  # pragma: no cover - Protocol
        """트랜잭션 스코프를 열고 세션을 돌려준다. 예외 시 전체 abort."""
        ...


class MongoTransactionRunner:
    """pymongo 세션 기반 트랜잭션 실행기.

    `with_transaction` 의 자동 재시도는 사용하지 않는다. 커밋 응답이 유실된 요청을
    내부에서 다시 실행하면 이중 차감 위험이 있으므로, 재시도는 호출자가 멱등 키와 함께 한다.
    """

    def __init__(self, client: MongoClient) -> None:
        self._client = client
        self._max_commit_ms = get_transaction_max_commit_ms()

    @contextmanager
    def transaction(self) -> Iterator[ClientSession]:
        with self._client.start_session() as session:
            # 정상 종료 시 commit, 예외 시 abort 후 예외 전파
            with session.start_transaction(
                read_concern=ReadConcern("snapshot"),
                write_concern=WriteConcern("majority"),
                read_preference=ReadPreference.PRIMARY,
                max_commit_time_ms=self._max_commit_ms,
            ):
                yield session
