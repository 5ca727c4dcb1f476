"""Correlates requests, responses and log lines through X-Request-Id."""

import uuid
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from hausdog.api.error_model import REQUEST_ID_HEADER, clean_request_id


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Keeps a usable incoming X-Request-Id or assigns a uuid4 to the request.

    Error handlers read the id from request.state.request_id, and the response
    always carries it back.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = clean_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id or str(uuid.uuid4())

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request.state.request_id
        return response
