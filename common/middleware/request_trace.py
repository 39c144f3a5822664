import logging
import time
import uuid
from urllib.parse import parse_qs

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response


REQUEST_ID_HEADER = "X-Request-Id"
SPAN_ID_HEADER = "X-Span-Id"
IDEMPOTENCY_KEY_HEADER = "Idempotency-Key"

# 노이즈를 줄이기 위해 로그에서 제외할 엔드포인트 경로 목록
IGNORED_LOG_PATHS: set[str] = {"/health"}

# 게이트웨이 웹훅 본문에는 계좌/연락처 정보가 있어 로그에 남기지 않는다.
BODY_REDACTED_PATH_PREFIXES: tuple[str, ...] = ("/api/v1/webhooks/",)

MAX_LOGGED_BODY_LENGTH = 1024


class RequestTraceMiddleware(BaseHTTPMiddleware):
    """공통 Request/Span ID 로그 미들웨어.

    - X-Request-Id, X-Span-Id 를 읽고, 없으면 request_id만 새로 생성한다.
    - Idempotency-Key 가 있으면 request.state 에 저장해 원장 API 가 재시도 식별에 사용한다.
    - 응답 헤더에 동일한 값을 설정하고, 최소한의 inbound/outbound 로그를 남긴다.
    """

    def __init__(self, app, logger: logging.Logger | None = None) -> None:  # type: ignore[override]
        super().__init__(app)
        self._logger = logger or logging.getLogger("request_trace")

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id, span_id = self._extract_trace_ids(request)
        idempotency_key = request.headers.get(IDEMPOTENCY_KEY_HEADER) or None

        request.state.request_id = request_id
        request.state.span_id = span_id
        request.state.idempotency_key = idempotency_key
        request.state.request_body = await self._read_body_snippet(request)

        should_log = request.url.path not in IGNORED_LOG_PATHS
        start = time.monotonic()

        try:
            response = await call_next(request)
        except Exception:
            if should_log:
                self._logger.exception(
                    "request failed",
                    extra=self._build_log_extra(
                        request, duration=time.monotonic() - start
                    ),
                )
            raise

        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        response.headers.setdefault(SPAN_ID_HEADER, span_id)
        if idempotency_key:
            response.headers.setdefault(IDEMPOTENCY_KEY_HEADER, idempotency_key)

        if should_log:
            self._logger.info(
                "completed request",
                extra=self._build_log_extra(
                    request,
                    status=response.status_code,
                    duration=time.monotonic() - start,
                ),
            )

        return response

    async def _read_body_snippet(self, request: Request) -> str | None:
        if request.method not in {"POST", "PUT", "PATCH", "DELETE"}:
            return None
        if request.url.path.startswith(BODY_REDACTED_PATH_PREFIXES):
            return None

        try:
            body_bytes = await request.body()
        except Exception:  # noqa: BLE001
            body_bytes = b""
        if not body_bytes:
            return None

        text = body_bytes.decode("utf-8", errors="replace")
        return text[:MAX_LOGGED_BODY_LENGTH]

    def _extract_trace_ids(self, request: Request) -> tuple[str, str]:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        span_id = request.headers.get(SPAN_ID_HEADER) or "0"
        return request_id, span_id

    def _build_log_extra(
        self,
        request: Request,
        status: int | None = None,
        duration: float | None = None,
    ) -> dict[str, object]:
        extra: dict[str, object] = {
            "request_id": request.state.request_id,
            "span_id": request.state.span_id,
            "method": request.method,
            "path": request.url.path,
        }

        idempotency_key = getattr(request.state, "idempotency_key", None)
        if idempotency_key:
            extra["idempotency_key"] = idempotency_key

        query = request.url.query
        if query:
            parsed = parse_qs(query, keep_blank_values=True)
            if parsed:
                extra["query_params"] = {
                    key: values[0] if len(values) == 1 else values
                    for key, values in parsed.items()
                }

        body = getattr(request.state, "request_body", None)
        if body:
            extra["body"] = body

        if status is not None:
            extra["status"] = status

        if duration is not None:
            extra["duration"] = f"{duration * 1000:.3f}ms"

        return extra
