"""Error envelopes for the REST API.

Domain errors and request validation failures are answered as
`{"success": false, "error": "..."}` with the error's status code, never as
an unhandled 500.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from civicpulse.errors import AuthError, ChatError, ChatPermissionError, RateLimitedError

logger = logging.getLogger(__name__)


def error_response(status_code: int, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code, headers=headers)


async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    logger.info("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.message)
    headers: dict[str, str] = {}
    body_extra: dict[str, str] = {}
    if isinstance(exc, AuthError):
        headers["WWW-Authenticate"] = "Bearer"
    if isinstance(exc, RateLimitedError):
        headers["Retry-After"] = str(exc.retry_after)
    if isinstance(exc, ChatPermissionError):
        body_extra["reason"] = exc.reason.value
    if body_extra:
        return JSONResponse(
            {"success": False, "error": exc.message, **body_extra},
            status_code=exc.status_code,
            headers=headers or None,
        )
    return error_response(exc.status_code, exc.message, headers or None)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = f"{location}: {first.get('msg', 'invalid request')}" if location else "Invalid request"
    return error_response(400, message)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ChatError, chat_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
