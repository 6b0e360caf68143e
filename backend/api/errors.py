"""Exception handlers translating domain errors to HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from services.errors import AuthenticationError, BlogError, status_code_for

logger = logging.getLogger(__name__)


async def blog_error_handler(request: Request, exc: BlogError) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(
            "Request failed",
            extra={"path": request.url.path, "code": exc.code, "reason": exc.message},
        )
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return JSONResponse(exc.to_dict(), status_code=status_code, headers=headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    detail = f"{location}: {message}" if location else message
    return JSONResponse(
        {
            "detail": detail,
            "code": "ValidationError",
            "details": {"errors": jsonable_errors(errors)},
        },
        status_code=status.HTTP_400_BAD_REQUEST,
    )


def jsonable_errors(errors: list[dict]) -> list[dict]:
    return [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg", "")}
        for error in errors
    ]


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BlogError, blog_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
