"""JSON envelopes and the app-level exception handlers that produce them."""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from registration_api.errors import RegistrationError

_LOGGER = logging.getLogger(__name__)

_MEMBER_COUNT_ERRORS = {"too_short", "too_long"}


def is_development() -> bool:
    return os.getenv("APP_ENV", "production").strip().lower() == "development"


def success_body(message: str, data: Any) -> dict[str, Any]:
    return {"success": True, "message": message, "data": data}


def error_body(message: str, **extra: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "message": message}
    body.update({key: value for key, value in extra.items() if value is not None})
    return body


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request body"
    first = errors[0]
    loc = [str(part) for part in first.get("loc", ()) if part != "body"]
    if loc and loc[-1] == "members" and first.get("type") in _MEMBER_COUNT_ERRORS:
        return "Team must have 1 to 5 members"
    message = str(first.get("msg", "Invalid value"))
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return f"{'.'.join(loc)}: {message}" if loc else message


async def registration_error_handler(request: Request, exc: RegistrationError) -> JSONResponse:
    headers: Optional[dict[str, str]] = None
    extra = dict(exc.extra)
    retry_after = extra.pop("retry_after_seconds", None)
    if retry_after is not None:
        headers = {"Retry-After": str(retry_after)}
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, **extra),
        headers=headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content=error_body(_validation_message(exc)))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    _LOGGER.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=error_body(
            "An internal error occurred",
            error=str(exc) if is_development() else None,
        ),
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RegistrationError, registration_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
