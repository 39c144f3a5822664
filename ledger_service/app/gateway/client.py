"""송금 게이트웨이 HTTP 클라이언트 (httpx).

에러 분류 규칙:
- 연결 자체가 안 된 경우(ConnectError/ConnectTimeout/PoolTimeout) -> GatewayUnreachable (실패)
- 그 외 타임아웃/전송 오류 -> GatewayAmbiguous (결과 불명)
- HTTP 5xx -> GatewayAmbiguous
- HTTP 4xx 또는 본문 status == "ERROR" -> GatewayFailure

조회성/멱등 호출(인증, 수취인 등록, 상태 조회, 잔액 조회)만 재시도하고,
송금 요청은 클라이언트 안에서 절대 재시도하지 않는다.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, TypeVar

import httpx

from ..config import GatewayConfig
from ..exceptions import (
    GatewayAmbiguous,
    GatewayFailure,
    GatewayUnreachable,
)
from ..models.payee import PayeeContact
from .interfaces import (
    TransferGatewayInterface,
    TransferReceipt,
    TransferStatus,
    TransferStatusResult,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")

# 토큰 만료 직전 요청이 거절되지 않도록 여유를 둔다.
TOKEN_REFRESH_MARGIN_SECONDS = 60.0
DEFAULT_TOKEN_LIFETIME_SECONDS = 300.0

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_BASE_SECONDS = 0.5
MAX_BACKOFF_SECONDS = 10.0

BENEFICIARY_ALREADY_EXISTS = "BENEFICIARY_ALREADY_EXISTS"
DEFAULT_TRANSFER_REMARKS = "Responder earnings payout"


class TransferGatewayClient(TransferGatewayInterface):
    """Bearer 토큰 기반 V1 payout API 클라이언트."""

    def __init__(
        self,
        config: GatewayConfig,
        *,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_base_seconds: float = DEFAULT_BACKOFF_BASE_SECONDS,
    ) -> None:
        self._config = config
        self._client = httpx.Client(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            transport=transport,
            headers={"Accept": "application/json"},
        )
        self._sleep = sleep
        self._clock = clock
        self._max_attempts = max(1, max_attempts)
        self._backoff_base_seconds = backoff_base_seconds

        self._token: str | None = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    @property
    def _transfer_timeout(self) -> float:
        return self._config.timeout_seconds

    @property
    def _query_timeout(self) -> float:
        return self._config.timeout_seconds / 2

    def close(self) -> None:
        self._client.close()

    # 게이트웨이 연산 ---------------------------------------------------------
    def register_payee(
        self, payee_id: str, contact: PayeeContact, destination: str
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "beneId": payee_id,
            "name": contact.name[:100],
            "email": contact.email or "",
            "phone": _normalize_phone(contact.phone),
            "vpa": destination,
            "address1": "India",
        }

        def _call() -> dict[str, Any]:
            resp = self._send(
                "POST", "/addBeneficiary", json=payload, timeout=self._query_timeout
            )
            return self._check_response(resp, "register_payee")

        try:
            body = self._with_retry("register_payee", _call)
        except GatewayFailure as exc:
            if _is_already_registered(exc.response):
                logger.info("payee already registered: %s", payee_id)
                return {
                    "status": "SUCCESS",
                    "subCode": BENEFICIARY_ALREADY_EXISTS,
                    "message": "Beneficiary already exists",
                }
            raise

        logger.info("payee registered: %s", payee_id)
        return body

    def request_transfer(
        self,
        transfer_id: str,
        payee_id: str,
        amount: Decimal,
        mode: str | None = None,
        remarks: str | None = None,
    ) -> TransferReceipt:
        payload = {
            "beneId": payee_id,
            "amount": f"{amount:.2f}",
            "transferId": transfer_id,
            "transferMode": mode or self._config.transfer_mode,
            "remarks": remarks or DEFAULT_TRANSFER_REMARKS,
        }

        # 토큰 발급 단계의 불명확한 오류는 송금 요청 전이므로 실패로 확정할 수 있다.
        try:
            self._get_token()
        except GatewayAmbiguous as exc:
            raise GatewayFailure(
                f"gateway authorization failed before transfer: {exc}",
                status_code=exc.status_code,
                response=exc.response,
            ) from exc

        resp = self._send(
            "POST", "/requestTransfer", json=payload, timeout=self._transfer_timeout
        )
        try:
            body = self._check_response(resp, "request_transfer")
        except GatewayFailure as exc:
            if _is_duplicate_transfer(exc.response):
                # 이전 시도가 이미 접수되었다는 뜻이므로 실패로 보상하면 안 된다.
                raise GatewayAmbiguous(
                    f"transfer {transfer_id} already exists at gateway",
                    status_code=exc.status_code,
                    response=exc.response,
                ) from exc
            raise

        data = body.get("data") or {}
        status = _transfer_status_from_receipt(body)
        logger.info(
            "transfer requested: status=%s", status.value, extra={"transfer_id": transfer_id}
        )
        return TransferReceipt(
            status=status,
            reference_id=_optional_str(data.get("referenceId")),
            raw=body,
        )

    def get_transfer_status(self, transfer_id: str) -> TransferStatusResult:
        def _call() -> TransferStatusResult:
            resp = self._send(
                "GET",
                "/getTransferStatus",
                params={"transferId": transfer_id},
                timeout=self._query_timeout,
            )
            if resp.status_code == 404:
                return TransferStatusResult(
                    status=TransferStatus.NOT_FOUND,
                    reference_id=None,
                    raw=_parse_body(resp),
                )
            try:
                body = self._check_response(resp, "get_transfer_status")
            except GatewayFailure as exc:
                if _is_not_found(exc.response):
                    return TransferStatusResult(
                        status=TransferStatus.NOT_FOUND,
                        reference_id=None,
                        raw=exc.response or {},
                    )
                raise

            transfer = (body.get("data") or {}).get("transfer") or {}
            return TransferStatusResult(
                status=_parse_transfer_status(transfer.get("status")),
                reference_id=_optional_str(transfer.get("referenceId")),
                raw=body,
            )

        return self._with_retry("get_transfer_status", _call)

    def get_account_balance(self) -> Decimal:
        def _call() -> dict[str, Any]:
            resp = self._send("GET", "/getBalance", timeout=self._query_timeout)
            return self._check_response(resp, "get_account_balance")

        body = self._with_retry("get_account_balance", _call)
        data = body.get("data") or {}
        raw_balance = data.get("availableBalance", data.get("balance"))
        try:
            return Decimal(str(raw_balance))
        except (InvalidOperation, TypeError) as exc:
            raise GatewayFailure(
                f"unexpected balance payload: {raw_balance!r}", response=body
            ) from exc

    # 인증 -------------------------------------------------------------------
    def _get_token(self) -> str:
        with self._token_lock:
            if self._token and self._clock() < self._token_expires_at - TOKEN_REFRESH_MARGIN_SECONDS:
                return self._token

        # 발급은 락 밖에서 한다. 동시에 만료를 본 호출들은 각자 발급받고 마지막 값이 남는다
        body = self._with_retry("authorize", self._authorize)
        data = body.get("data") or {}
        token = data.get("token")
        if not token:
            raise GatewayFailure("authorize response did not contain a token", response=body)

        now = self._clock()
        expiry = data.get("expiry")
        try:
            expires_at = float(expiry) if expiry is not None else now + DEFAULT_TOKEN_LIFETIME_SECONDS
        except (TypeError, ValueError):
            expires_at = now + DEFAULT_TOKEN_LIFETIME_SECONDS

        with self._token_lock:
            self._token = str(token)
            self._token_expires_at = expires_at
        return str(token)

    def _authorize(self) -> dict[str, Any]:
        resp = self._send(
            "POST",
            "/authorize",
            headers={
                "X-Client-Id": self._config.client_id,
                "X-Client-Secret": self._config.client_secret,
            },
            timeout=self._query_timeout,
            authenticated=False,
        )
        return self._check_response(resp, "authorize")

    def _invalidate_token(self) -> None:
        with self._token_lock:
            self._token = None
            self._token_expires_at = 0.0

    # 내부 util -------------------------------------------------------------
    def _send(
        self,
        method: str,
        path: str,
        *,
        timeout: float,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        authenticated: bool = True,
    ) -> httpx.Response:
        request_headers = dict(headers or {})
        if authenticated:
            request_headers["Authorization"] = f"Bearer {self._get_token()}"

        try:
            return self._client.request(
                method,
                path,
                json=json,
                params=params,
                headers=request_headers,
                timeout=timeout,
            )
        except (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout) as exc:
            raise GatewayUnreachable(f"gateway unreachable: {exc}") from exc
        except httpx.TransportError as exc:
            raise GatewayAmbiguous(f"gateway call outcome unknown: {exc}") from exc

    def _check_response(self, resp: httpx.Response, operation: str) -> dict[str, Any]:
        body = _parse_body(resp)

        if resp.status_code == 401:
            self._invalidate_token()

        if resp.status_code >= 500:
            raise GatewayAmbiguous(
                f"gateway {operation} returned {resp.status_code}",
                status_code=resp.status_code,
                response=body,
            )
        if resp.status_code >= 400:
            raise GatewayFailure(
                f"gateway {operation} rejected: {_describe(body)}",
                status_code=resp.status_code,
                response=body,
            )
        if str(body.get("status", "")).upper() == "ERROR":
            raise GatewayFailure(
                f"gateway {operation} returned ERROR: {_describe(body)}",
                status_code=resp.status_code,
                response=body,
            )
        return body

    def _with_retry(self, operation: str, func: Callable[[], T]) -> T:
        for attempt in range(1, self._max_attempts + 1):
            try:
                return func()
            except (GatewayAmbiguous, GatewayUnreachable) as exc:
                if attempt == self._max_attempts:
                    logger.error(
                        "gateway %s failed after %d attempts: %s",
                        operation,
                        attempt,
                        exc,
                    )
                    raise

                delay = min(
                    self._backoff_base_seconds * (2 ** (attempt - 1)), MAX_BACKOFF_SECONDS
                )
                delay *= 0.5 + random.random() * 0.5
                logger.warning(
                    "gateway %s attempt %d/%d failed: %s. retrying in %.2fs",
                    operation,
                    attempt,
                    self._max_attempts,
                    exc,
                    delay,
                )
                self._sleep(delay)

        raise AssertionError("unreachable")  # pragma: no cover


def _parse_body(resp: httpx.Response) -> dict[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return {"raw": resp.text[:500]}
    if isinstance(body, dict):
        return body
    return {"data": body}


def _describe(body: dict[str, Any] | None) -> str:
    if not body:
        return "no body"
    message = body.get("message") or body.get("raw") or "unknown error"
    sub_code = body.get("subCode")
    return f"{message} ({sub_code})" if sub_code else str(message)


def _is_already_registered(body: dict[str, Any] | None) -> bool:
    if not body:
        return False
    if body.get("subCode") == BENEFICIARY_ALREADY_EXISTS:
        return True
    return "already exists" in str(body.get("message", "")).lower()


def _is_duplicate_transfer(body: dict[str, Any] | None) -> bool:
    if not body:
        return False
    message = str(body.get("message", "")).lower()
    return "transfer id already exists" in message or "already exists" in message


def _is_not_found(body: dict[str, Any] | None) -> bool:
    if not body:
        return False
    if str(body.get("subCode")) == "404":
        return True
    message = str(body.get("message", "")).lower()
    return "does not exist" in message or "not found" in message


def _transfer_status_from_receipt(body: dict[str, Any]) -> TransferStatus:
    """송금 요청 응답의 상태. SUCCESS 가 아니면 접수 후 처리 중으로 본다."""

    status = str(body.get("status", "")).upper()
    if status == "SUCCESS" and str(body.get("subCode", "200")) == "200":
        return TransferStatus.SUCCESS
    return TransferStatus.PENDING


def _parse_transfer_status(raw: Any) -> TransferStatus:
    value = str(raw or "").upper()
    try:
        status = TransferStatus(value)
    except ValueError:
        logger.warning("unknown transfer status from gateway: %r", raw)
        return TransferStatus.PENDING
    if status is TransferStatus.NOT_FOUND:
        return TransferStatus.PENDING
    return status


def _normalize_phone(phone: str | None) -> str:
    if not phone:
        return ""
    digits = "".join(ch for ch in phone if ch.isdigit())
    if digits.startswith("91") and len(digits) == 12:
        digits = digits[2:]
    return digits


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)
