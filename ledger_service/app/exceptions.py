"""원장 서비스 에러 분류.

모든 비즈니스 에러는 안정적인 `code` 를 가지며, API 레이어가 이를 HTTP 상태 코드로 매핑한다.
"""

from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """원장 서비스 에러의 공통 베이스."""

    code = "LEDGER_ERROR"
    http_status = 500

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class InsufficientFunds(LedgerError):
    code = "INSUFFICIENT_FUNDS"
    http_status = 402


class FeatureDisabled(LedgerError):
    code = "FEATURE_DISABLED"
    http_status = 403


class ValidationError(LedgerError):
    code = "VALIDATION_ERROR"
    http_status = 400


class InvalidDestination(ValidationError):
    code = "INVALID_DESTINATION"


class BelowMinimum(ValidationError):
    code = "BELOW_MINIMUM"


class NotFound(LedgerError):
    code = "NOT_FOUND"
    http_status = 404


class InvalidState(LedgerError):
    """허용되지 않은 상태 전이. 호출 측 버그일 가능성이 높아 error 레벨로 기록한다."""

    code = "INVALID_STATE"
    http_status = 409


class AlreadyLocked(LedgerError):
    """같은 수취인에 대해 진행 중인 환급/지급이 이미 있다."""

    code = "ALREADY_LOCKED"
    http_status = 409


class ConcurrencyConflict(LedgerError):
    """조건부 갱신이 아무 문서와도 매칭되지 않았다.

    내부용이며, 호출자가 보호하던 비즈니스 규칙(잔액 부족 등)으로 다시 표현한다.
    """

    code = "CONCURRENCY_CONFLICT"
    http_status = 409


class ConfigurationMissing(LedgerError):
    """활성 설정 문서가 없다. 기본값 생성으로 스스로 복구되므로 외부로 노출하지 않는다."""

    code = "CONFIGURATION_MISSING"


class GatewayError(LedgerError):
    code = "GATEWAY_ERROR"
    http_status = 502

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        response: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class GatewayFailure(GatewayError):
    """게이트웨이가 명시적으로 거절했거나 요청이 전송되지 않았다. 보상 처리 대상."""

    code = "GATEWAY_FAILURE"


class GatewayAmbiguous(GatewayError):
    """결과를 알 수 없다(타임아웃, 연결 끊김, 5xx). 보상하지 않고 대사(reconcile)로 넘긴다."""

    code = "GATEWAY_AMBIGUOUS"


class GatewayUnreachable(GatewayFailure):
    """요청이 게이트웨이에 도달하지 못했다 (연결 실패). 송금이 일어났을 수 없으므로 실패로 본다."""

    code = "GATEWAY_UNREACHABLE"
