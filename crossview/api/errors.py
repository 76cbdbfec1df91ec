"""Map :mod:`crossview.errors` exceptions to HTTP responses.

    400 INVALID_API_VERSION    -- apiVersion is not ``v1`` or ``group/version``
    400 EVENTS_NOT_SUPPORTED   -- Event requested through the single-object read
    400 INVALID_REQUEST        -- other malformed input (e.g. unknown quick filter)
    404 RESOURCE_NOT_FOUND     -- named object does not exist
    404 UNKNOWN_CONTEXT        -- context absent or none selected
    502 UPSTREAM_ERROR         -- the Kubernetes API failed
    503 CREDENTIALS_NOT_FOUND  -- no in-cluster identity and no kubeconfig
    500 INTERNAL_ERROR         -- anything else
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from crossview.api.schemas import ErrorResponse
from crossview.errors import (
    CredentialsNotFound,
    CrossviewError,
    EventsNotSupported,
    InvalidGroupVersion,
    ResourceNotFound,
    UnknownContext,
    UpstreamAPIError,
)
from crossview.observability.logging import get_logger

_log = get_logger("api.errors")

_STATUS_BY_TYPE: tuple[tuple[type[CrossviewError], int, str], ...] = (
    (InvalidGroupVersion, 400, "INVALID_API_VERSION"),
    (EventsNotSupported, 400, "EVENTS_NOT_SUPPORTED"),
    (ResourceNotFound, 404, "RESOURCE_NOT_FOUND"),
    (UnknownContext, 404, "UNKNOWN_CONTEXT"),
    (CredentialsNotFound, 503, "CREDENTIALS_NOT_FOUND"),
    (UpstreamAPIError, 502, "UPSTREAM_ERROR"),
)


def error_response(status_code: int, error: str, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=error, detail=detail).model_dump())


async def _handle_crossview_error(request: Request, exc: Exception) -> JSONResponse:
    for exc_type, status_code, code in _STATUS_BY_TYPE:
        if isinstance(exc, exc_type):
            if status_code >= 500:
                _log.warning("request_failed", path=request.url.path, error=str(exc), code=code)
            return error_response(status_code, code, str(exc))
    _log.error("request_failed", path=request.url.path, error=str(exc))
    return error_response(500, "INTERNAL_ERROR", str(exc))


async def _handle_value_error(request: Request, exc: Exception) -> JSONResponse:
    return error_response(400, "INVALID_REQUEST", str(exc))


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    _log.error("unhandled_exception", path=request.url.path, error=str(exc), exc_type=type(exc).__name__)
    return error_response(500, "INTERNAL_ERROR", "An unexpected error occurred.")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CrossviewError, _handle_crossview_error)
    app.add_exception_handler(ValueError, _handle_value_error)
    app.add_exception_handler(Exception, _handle_unexpected)
