"""Error taxonomy and the FastAPI handlers that turn it into structured bodies.

Every failure a caller can see is a JSON object ``{"error", "code", "field"}``;
stack traces are logged, never returned.
"""

from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from storefront.core.config import settings

logger = structlog.get_logger(__name__)


class AppError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.field = field


class ValidationError(AppError):
    status_code = 422
    code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    """Missing entity, or one owned by another tenant; callers cannot tell which."""
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found")


class UnauthorizedError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"


def _body(message: str, code: str, field: Optional[str] = None) -> dict:
    return {"error": message, "code": code, "field": field}


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("Application error", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=_body(exc.message, exc.code, exc.field))


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    field = None
    if errors:
        loc = [str(p) for p in errors[0].get("loc", ()) if p != "body"]
        field = ".".join(loc) or None
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=422, content=_body(message, "VALIDATION_ERROR", field))


async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("Integrity error", path=request.url.path, error=str(exc.orig))
    return JSONResponse(status_code=409, content=_body("A record with that data already exists", "DUPLICATE_ENTRY"))


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error", path=request.url.path)
    message = "Internal server error" if settings.ENV == "production" else str(exc)
    return JSONResponse(status_code=500, content=_body(message, "INTERNAL_ERROR"))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
