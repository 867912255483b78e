from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


logger = logging.getLogger(__name__)


def error_body(message: str) -> dict[str, str]:
    return {"error": message}


def _message(detail: Any) -> str:
    # HTTPException details are plain strings here; anything else gets a generic text.
    if isinstance(detail, str):
        return detail
    if isinstance(detail, dict) and detail.get("message"):
        return str(detail["message"])
    return "Request failed"


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(content=error_body(_message(exc.detail)), status_code=exc.status_code, headers=exc.headers)


async def starlette_http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    # Covers router-level 404/405 raised before any route runs.
    return JSONResponse(content=error_body(_message(exc.detail)), status_code=exc.status_code, headers=exc.headers)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # Malformed query parameters are client errors: 400, not FastAPI's 422.
    errors = exc.errors()
    name = None
    if errors:
        loc = errors[0].get("loc") or ()
        name = loc[-1] if loc else None
    message = f"Invalid {name} parameter" if name else "Invalid request"
    return JSONResponse(content=error_body(message), status_code=400)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Avoid leaking stack traces; log and return a stable message.
    logger.error("unhandled_request_error path=%s", request.url.path, exc_info=exc)
    return JSONResponse(content=error_body("Internal Server Error"), status_code=500)
