"""Error envelope returned by every failing Hausdog API call.

    {"code": "INVALID_TRANSITION", "message": "...", "details": {...},
     "request_id": "..."}

`details` never carries file bytes, credentials or provider payloads.
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

REQUEST_ID_HEADER = "X-Request-Id"
MAX_REQUEST_ID_LENGTH = 128

STATUS_CODE_NAMES: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    413: "PAYLOAD_TOO_LARGE",
    415: "UNSUPPORTED_MEDIA_TYPE",
    422: "UNPROCESSABLE_ENTITY",
    502: "BAD_GATEWAY",
    503: "SERVICE_UNAVAILABLE",
}


class ErrorEnvelope(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None
    request_id: str


def clean_request_id(value: str | None) -> str | None:
    """Return a caller-supplied request id if it is usable, else None.

    Usable means non-blank, printable and at most 128 characters.
    """
    if value is None:
        return None
    value = value.strip()
    if not value or len(value) > MAX_REQUEST_ID_LENGTH or not value.isprintable():
        return None
    return value


def request_id_for(request: Request) -> str:
    """The id RequestIdMiddleware assigned, else the header, else a fresh uuid4."""
    assigned = getattr(request.state, "request_id", None)
    if assigned is not None:
        return str(assigned)
    return clean_request_id(request.headers.get(REQUEST_ID_HEADER)) or str(uuid.uuid4())


def code_for_status(status_code: int) -> str:
    return STATUS_CODE_NAMES.get(status_code, "INTERNAL_ERROR" if status_code >= 500 else "ERROR")


def error_response(
    request: Request,
    http_status: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Render an ErrorEnvelope and echo the request id header."""
    envelope = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        request_id=request_id_for(request),
    )
    return JSONResponse(
        status_code=http_status,
        content=envelope.model_dump(mode="json"),
        headers={REQUEST_ID_HEADER: envelope.request_id},
    )
