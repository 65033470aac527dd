import enum
import logging
from typing import Any, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    INTEGRATION = "integration"


STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.AUTHENTICATION: 401,
    ErrorKind.AUTHORIZATION: 403,
    ErrorKind.INTEGRATION: 500,
}


class AppError(Exception):
    """Application error tagged with its kind; the handler maps kind to status."""

    def __init__(self, kind: ErrorKind, message: str, issues: Optional[List[Any]] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.issues = issues

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]


def validation_error(message: str, issues: Optional[List[Any]] = None) -> AppError:
    return AppError(ErrorKind.VALIDATION, message, issues)


def not_found(message: str) -> AppError:
    return AppError(ErrorKind.NOT_FOUND, message)


def conflict(message: str) -> AppError:
    return AppError(ErrorKind.CONFLICT, message)


def unauthenticated(message: str = "Unauthorized") -> AppError:
    return AppError(ErrorKind.AUTHENTICATION, message)


def forbidden(message: str = "Forbidden") -> AppError:
    return AppError(ErrorKind.AUTHORIZATION, message)


def integration_error(message: str) -> AppError:
    return AppError(ErrorKind.INTEGRATION, message)


def error_body(message: str, issues: Optional[List[Any]] = None) -> dict:
    body = {"success": False, "message": message}
    if issues is not None:
        body["error"] = issues
    return body


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.issues))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    issues = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content=error_body("Validation failed", issues))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=error_body("Internal Server Error"))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
