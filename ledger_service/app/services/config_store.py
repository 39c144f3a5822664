"""활성 수수료 설정 저장소.

프로세스별로 TTL 캐시를 두고, 관리자 수정 시 같은 프로세스의 캐시는 즉시 갱신한다.
다른 프로세스는 TTL 이 지날 때까지 이전 값을 볼 수 있으며, 저장소가 항상 기준이다.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

from pydantic import ValidationError as PydanticValidationError
from pymongo.errors import DuplicateKeyError

from common.mongo.transaction import TransactionRunnerInterface

from ..exceptions import ConcurrencyConflict, ConfigurationMissing, ValidationError
from ..models.commission_config import CommissionConfig
from ..repositories.interfaces import CommissionConfigRepositoryInterface


logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS = 60.0


class ConfigurationStore:
    def __init__(
        self,
        repo: CommissionConfigRepositoryInterface,
        tx_runner: TransactionRunnerInterface,
        *,
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._repo = repo
        self._tx = tx_runner
        self._ttl_seconds = ttl_seconds
        self._clock = clock

        self._lock = threading.Lock()
        self._cached: CommissionConfig | None = None
        self._loaded_at = 0.0

    def get_active_config(self) -> CommissionConfig:
        """활성 설정을 반환한다. 어떤 경우에도 예외를 던지지 않는다."""

        with self._lock:
            if (
                self._cached is not None
                and self._clock() - self._loaded_at < self._ttl_seconds
            ):
                return self._cached
        return self.refresh()

    def refresh(self) -> CommissionConfig:
        """저장소에서 다시 읽는다. 실패하면 이전 캐시, 그것도 없으면 기본값을 돌려준다."""

        try:
            config = self._load_or_create()
        except Exception:  # noqa: BLE001
            logger.exception("failed to load commission config, serving fallback")
            with self._lock:
                if self._cached is not None:
                    return self._cached
            return CommissionConfig.defaults()

        self._store(config)
        return config

    def invalidate(self) -> None:
        with self._lock:
            self._cached = None
            self._loaded_at = 0.0

    def update_config(self, admin_code: str, changes: dict[str, Any]) -> CommissionConfig:
        """새 설정 버전을 활성화한다.

        이전 활성 버전 비활성화와 새 버전 삽입을 한 트랜잭션에서 처리하고,
        커밋 직후 이 프로세스의 캐시를 새 값으로 교체한다.
        """

        current = self._repo.find_active()
        base = current or CommissionConfig.defaults()
        try:
            new_config = base.apply_changes(changes, admin_code)
        except PydanticValidationError as exc:
            raise ValidationError(
                "invalid commission config",
                errors=exc.errors(
                    include_url=False, include_context=False, include_input=False
                ),
            ) from exc

        try:
            with self._tx.transaction() as session:
                if current is not None and current.id is not None:
                    if not self._repo.deactivate(current.id, session=session):
                        raise ConcurrencyConflict(
                            "active commission config changed concurrently"
                        )
                saved = self._repo.insert_active(new_config, session=session)
        except DuplicateKeyError as exc:
            raise ConcurrencyConflict(
                "active commission config changed concurrently"
            ) from exc

        self._store(saved)
        logger.info(
            "commission config updated by %s (id=%s)", admin_code, saved.id
        )
        return saved

    def list_history(self, limit: int = 20) -> list[CommissionConfig]:
        if limit <= 0 or limit > 100:
            limit = 20
        return self._repo.list_history(limit)

    def _load_or_create(self) -> CommissionConfig:
        config = self._repo.find_active()
        if config is not None:
            return config

        logger.warning("no active commission config found, creating defaults")
        try:
            return self._repo.insert_active(CommissionConfig.defaults())
        except DuplicateKeyError:
            # 다른 프로세스가 먼저 만들었다
            existing = self._repo.find_active()
            if existing is None:
                raise ConfigurationMissing(
                    "active commission config vanished during creation"
                )
            return existing

    def _store(self, config: CommissionConfig) -> None:
        with self._lock:
            self._cached = config
            self._loaded_at = self._clock()
