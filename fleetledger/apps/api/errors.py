from __future__ import annotations

import logging
from typing import Any, Mapping

from fastapi import FastAPI, Request
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from fleetledger.apps.api.response import error_payload
from fleetledger.core.errors import (
    ConditionValidationError,
    FleetError,
    ReconcileStorageError,
    ReconcileTimeoutError,
    SearchError,
    UnknownResourceKindError,
)


logger = logging.getLogger(__name__)

_STATUS_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "AUTH_UNAUTHORIZED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}

# First match wins, so subclasses must precede their bases.
_FLEET_ERROR_STATUS: tuple[tuple[type[FleetError], int], ...] = (
    (UnknownResourceKindError, 404),
    (ConditionValidationError, 400),
    (SearchError, 400),
    (ReconcileTimeoutError, 503),
    (ReconcileStorageError, 500),
)


def fleet_error_status(exc: FleetError) -> int:
    for error_type, status_code in _FLEET_ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


def fleet_http_exception(exc: FleetError) -> HTTPException:
    # Translate domain errors into HTTPExceptions carrying field-level details.
    return HTTPException(status_code=fleet_error_status(exc), detail=exc.to_detail())


def _render(
    request: Request,
    status_code: int,
    detail: Any,
    headers: Mapping[str, str] | None = None,
) -> JSONResponse:
    code = _STATUS_CODES.get(status_code, "UNKNOWN_ERROR")
    message = "Request failed"
    details: dict[str, Any] | None = None
    if isinstance(detail, dict):
        code = str(detail.get("code") or code)
        message = str(detail.get("message") or message)
        details = {k: v for k, v in detail.items() if k not in {"code", "message"}}
    elif isinstance(detail, str):
        message = detail
    payload = error_payload(request, code=code, message=message, details=details)
    return JSONResponse(content=payload, status_code=status_code, headers=dict(headers or {}))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _render(request, exc.status_code, exc.detail, exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    payload = error_payload(
        request,
        code="REQUEST_VALIDATION_ERROR",
        message="Validation error",
        details={"errors": exc.errors()},
    )
    return JSONResponse(content=payload, status_code=422)


async def fleet_error_handler(request: Request, exc: FleetError) -> JSONResponse:
    # Domain errors that escaped route-level translation.
    status_code = fleet_error_status(exc)
    if status_code >= 500:
        logger.error("request.fleet_error", extra={"code": exc.code, "path": request.url.path})
    return _render(request, status_code, exc.to_detail())


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("request.unhandled_error", extra={"path": request.url.path}, exc_info=exc)
    return _render(request, 500, {"code": "INTERNAL_ERROR", "message": "Internal server error"})


def install_exception_handlers(app: FastAPI) -> None:
    # Starlette's HTTPException is the base of FastAPI's, so one handler covers both.
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(FleetError, fleet_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
