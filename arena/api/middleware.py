"""HTTP middleware: request ids and a request-body size cap."""

from __future__ import annotations

import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from arena.api.errors import error_response
from arena.logging_config import bind_request_id


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Bind `X-Request-ID` (or a fresh id) into the log context and echo it back."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:16]
        bind_request_id(request_id)
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class RequestBodyLimitMiddleware(BaseHTTPMiddleware):
    MAX_BYTES = 1024 * 1024

    def __init__(self, app, max_content_length: int = MAX_BYTES):
        super().__init__(app)
        self._max_bytes = max_content_length

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > self._max_bytes:
            return error_response(
                status_code=413,
                code="payload_too_large",
                message=f"Request body exceeds {self._max_bytes} bytes.",
            )
        return await call_next(request)
