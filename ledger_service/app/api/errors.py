"""원장 예외 -> HTTP 응답 매핑."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ..exceptions import InvalidState, LedgerError


logger = logging.getLogger(__name__)


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    if isinstance(exc, InvalidState):
        logger.error("invalid state on %s %s: %s", request.method, request.url.path, exc)
    elif exc.http_status >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc)

    detail = {"code": exc.code, "message": exc.message}
    if exc.details:
        detail["details"] = exc.details
    return JSONResponse(
        status_code=exc.http_status, content=jsonable_encoder({"detail": detail})
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LedgerError, ledger_error_handler)  # type: ignore[arg-type]
