"""Domain error taxonomy and the FastAPI handlers that render it.

Services raise the exceptions below; routers never translate them by hand.
Every rendered error has the shape ``{"error": <code>, "detail": <message>}``,
with an extra ``conflict`` object on 409 responses identifying the entity that
blocked the request.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

logger = logging.getLogger("tripcost.errors")


class DomainError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "domain_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class AuthorizationError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"

    def __init__(self, message: str, conflict: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.conflict = conflict or {}


def domain_error_handler(request: Request, exc: DomainError):  # type: ignore
    content: Dict[str, Any] = {"error": exc.code, "detail": exc.message}
    if isinstance(exc, ConflictError) and exc.conflict:
        content["conflict"] = exc.conflict
    if exc.status_code >= 500:
        logger.error("domain error %s: %s", exc.code, exc.message)
    else:
        logger.info("request rejected (%s): %s", exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=content)


def not_found_handler(request: Request, exc):  # type: ignore
    if exc.status_code != status.HTTP_404_NOT_FOUND:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "http_error", "detail": exc.detail},
        )
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={
            "error": "not_found",
            "detail": f"No route for {request.method} {request.url.path}",
        },
    )


def validation_error_handler(request: Request, exc: RequestValidationError):  # type: ignore
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "validation_error",
            "detail": _jsonable_errors(exc),
        },
    )


def server_error_handler(request: Request, exc: Exception):  # type: ignore
    logger.exception("unhandled exception")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "internal_error",
            "detail": "An unexpected error occurred.",
        },
    )


def _jsonable_errors(exc: RequestValidationError) -> list:
    # pydantic v2 puts the raised exception object into ctx; keep it printable
    errors = []
    for err in exc.errors():
        err = dict(err)
        ctx = err.get("ctx")
        if ctx:
            err["ctx"] = {k: str(v) for k, v in ctx.items()}
        errors.append(err)
    return errors
