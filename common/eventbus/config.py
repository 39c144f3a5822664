from __future__ import annotations

import os


KAFKA_BOOTSTRAP_SERVERS_ENV = "KAFKA_BOOTSTRAP_SERVERS"
KAFKA_GROUP_ID_ENV = "KAFKA_GROUP_ID"
KAFKA_MESSAGE_MAX_BYTES_ENV = "KAFKA_MESSAGE_MAX_BYTES"


def get_brokers() -> str:
    value = os.getenv(KAFKA_BOOTSTRAP_SERVERS_ENV)
    if not value:
        raise RuntimeError(f"{KAFKA_BOOTSTRAP_SERVERS_ENV} environment variable is required")
    return value


def get_group_id() -> str:
    """컨슈머 그룹 ID. 미설정 시 SERVICE_NAME 을 사용하고, 둘 다 없으면 설정 오류."""

    value = os.getenv(KAFKA_GROUP_ID_ENV) or os.getenv("SERVICE_NAME")
    if not value:
        raise RuntimeError(f"{KAFKA_GROUP_ID_ENV} environment variable is required")
    return value


def get_message_max_bytes() -> int | None:
    """Kafka producer에서 사용할 최대 메시지 크기(message.max.bytes)를 반환한다.

    - 비어있거나 0 이하이면 라이브러리 기본값을 쓰도록 None 을 반환한다.
    - 정수가 아닌 값이 들어오면 명시적인 에러를 발생시켜 조기에 설정 문제를 발견한다.
    """

    raw_value = os.getenv(KAFKA_MESSAGE_MAX_BYTES_ENV, "").strip()
    if not raw_value:
        return None

    try:
        value = int(raw_value)
    except ValueError as exc:  # noqa: TRY003
        raise RuntimeError(
            f"{KAFKA_MESSAGE_MAX_BYTES_ENV} must be an integer value, got: {raw_value!r}"
        ) from exc

    return value if value > 0 else None
