"""Exception handlers that turn every failure into an ErrorEnvelope.

Pipeline errors keep their kind on the wire:

    ValidationError       400 (413 too_large, 415 unsupported_content_type)
    AuthorizationError    403
    NotFoundError         404
    StateError            409 INVALID_TRANSITION
    ExternalServiceError  502 (provider message withheld)

Anything unexpected is logged with its traceback and returned as a bare 500.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from hausdog.api.error_model import code_for_status, error_response
from hausdog.errors import (
    AuthorizationError,
    ExternalServiceError,
    HausdogError,
    NotFoundError,
    StateError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_ERROR_STATUS: tuple[tuple[type[HausdogError], int, str], ...] = (
    (ValidationError, 400, "VALIDATION_FAILED"),
    (AuthorizationError, 403, "FORBIDDEN"),
    (NotFoundError, 404, "NOT_FOUND"),
    (StateError, 409, "INVALID_TRANSITION"),
    (ExternalServiceError, 502, "EXTERNAL_SERVICE_ERROR"),
)

_VALIDATION_REASON_STATUS = {
    "too_large": 413,
    "unsupported_content_type": 415,
}

_HIDDEN_LOCATIONS = frozenset({"body", "query", "path", "header", "form"})


class HausdogHttpError(Exception):
    """An HTTP-layer rejection raised before any pipeline code runs.

    Args:
        status_code: HTTP status code.
        code: Machine-readable error code.
        message: Human-readable error message.
        details: Optional additional context.
    """

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details


def status_for_error(exc: HausdogError) -> tuple[int, str]:
    """Map a pipeline error to (HTTP status, error code)."""
    for error_type, http_status, code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            if isinstance(exc, ValidationError):
                http_status = _VALIDATION_REASON_STATUS.get(exc.reason, http_status)
            return http_status, code
    return 500, "INTERNAL_ERROR"


async def _on_http_error(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, HausdogHttpError)
    return error_response(request, exc.status_code, exc.code, exc.message, exc.details)


async def _on_pipeline_error(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, HausdogError)
    http_status, code = status_for_error(exc)
    message = exc.message
    if isinstance(exc, ExternalServiceError):
        logger.warning("External service failure surfaced to client: %s", exc)
        message = f"Upstream service '{exc.service}' failed"
    return error_response(request, http_status, code, message, exc.to_details() or None)


async def _on_starlette_http_exception(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, HTTPException)
    message = str(exc.detail) if exc.detail else f"HTTP {exc.status_code}"
    return error_response(request, exc.status_code, code_for_status(exc.status_code), message)


async def _on_request_validation(request: Request, exc: Exception) -> JSONResponse:
    """Report offending fields by dotted name; input values are not echoed."""
    assert isinstance(exc, RequestValidationError)
    fields: list[dict[str, str]] = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in _HIDDEN_LOCATIONS]
        fields.append(
            {
                "field": ".".join(loc) or "request",
                "message": error.get("msg", "Validation error"),
            }
        )
    return error_response(
        request,
        422,
        "REQUEST_VALIDATION_FAILED",
        "Request validation failed",
        {"errors": fields} if fields else None,
    )


async def _on_unhandled(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled %s on %s %s",
        type(exc).__name__,
        request.method,
        request.url.path,
        extra={"request_id": getattr(request.state, "request_id", None)},
    )
    return error_response(request, 500, "INTERNAL_ERROR", "An internal error occurred")


def install_exception_handlers(app: FastAPI) -> None:
    """Register every handler on `app`."""
    app.add_exception_handler(HausdogHttpError, _on_http_error)
    app.add_exception_handler(HausdogError, _on_pipeline_error)
    app.add_exception_handler(HTTPException, _on_starlette_http_exception)
    app.add_exception_handler(RequestValidationError, _on_request_validation)
    app.add_exception_handler(Exception, _on_unhandled)
