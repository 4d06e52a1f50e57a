from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from arena.logging_config import get_logger


logger = get_logger(__name__)


@dataclass
class APIError(Exception):
    status_code: int
    code: str
    message: str
    details: dict[str, Any] | None = None


def error_response(*, status_code: int, code: str, message: str, details: dict[str, Any] | None = None) -> JSONResponse:
    payload: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        payload["error"]["details"] = jsonable_encoder(details)
    return JSONResponse(status_code=int(status_code), content=payload)


async def api_error_handler(_req: Request, exc: APIError) -> JSONResponse:
    return error_response(
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )


_HTTP_STATUS_CODES = {
    400: "invalid_argument",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    413: "payload_too_large",
}


async def http_exception_handler(_req: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Unknown routes and wrong methods use the same envelope as handled errors.
    response = error_response(
        status_code=exc.status_code,
        code=_HTTP_STATUS_CODES.get(exc.status_code, "internal" if exc.status_code >= 500 else "http_error"),
        message=str(exc.detail),
    )
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def validation_error_handler(_req: Request, exc: RequestValidationError) -> JSONResponse:
    # Pydantic errors may echo the submitted value; drop inputs so request API keys never come back.
    errors = [{k: v for k, v in err.items() if k not in {"input", "ctx"}} for err in exc.errors()]
    return error_response(
        status_code=400,
        code="invalid_argument",
        message="Invalid body.",
        details={"errors": errors},
    )


async def unhandled_error_handler(req: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_exception", path=req.url.path, error_type=type(exc).__name__, exc_info=exc)
    return error_response(
        status_code=500,
        code="internal",
        message="Internal server error.",
        details={"type": type(exc).__name__},
    )
