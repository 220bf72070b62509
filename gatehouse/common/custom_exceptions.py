import enum
from typing import Any, Dict, Optional
from fastapi import FastAPI, Request, status
from starlette.exceptions import HTTPException
from fastapi.exceptions import RequestValidationError
from gatehouse import logger
from gatehouse.common.utils import build_error, json_error
from gatehouse.common.constants import request_id_ctx


class ErrorKind(str, enum.Enum):
    INTERNAL = "internal_error"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID_INPUT = "invalid_input"
    RATE_LIMITED = "rate_limited"


KIND_STATUS = {
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
}

STATUS_KIND = {code: kind for kind, code in KIND_STATUS.items()}


class AppError(Exception):
    """Typed application error. `message` is client safe, `cause` is kept for logs only."""

    def __init__(self, kind: ErrorKind, message: str, fields: Optional[Dict[str, Any]] = None,
                 cause: Optional[BaseException] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.fields = fields
        self.cause = cause

    @property
    def status_code(self) -> int:
        return KIND_STATUS[self.kind]

    def __repr__(self) -> str:
        return f"AppError(kind={self.kind.value!r}, message={self.message!r})"

    @classmethod
    def internal(cls, cause: Optional[BaseException] = None, message: str = "internal server error"):
        return cls(ErrorKind.INTERNAL, message, cause=cause)

    @classmethod
    def unauthorized(cls, message: str = "unauthorized", cause: Optional[BaseException] = None):
        return cls(ErrorKind.UNAUTHORIZED, message, cause=cause)

    @classmethod
    def not_found(cls, message: str = "not found"):
        return cls(ErrorKind.NOT_FOUND, message)

    @classmethod
    def conflict(cls, message: str, fields: Optional[Dict[str, Any]] = None):
        return cls(ErrorKind.CONFLICT, message, fields=fields)

    @classmethod
    def invalid_input(cls, message: str, fields: Optional[Dict[str, Any]] = None):
        return cls(ErrorKind.INVALID_INPUT, message, fields=fields)

    @classmethod
    def rate_limited(cls, message: str = "too many requests"):
        return cls(ErrorKind.RATE_LIMITED, message)


def error_response(err: AppError):
    return json_error(build_error(err.kind.value, err.message, err.fields), status_code=err.status_code)


async def app_error_handler(request: Request, exc: AppError):

    extra = {
        "error_code": exc.kind.value,
        "path": request.url.path,
        "method": request.method,
        "reason": exc.message,
    }
    if exc.status_code >= 500:
        extra["cause"] = repr(exc.cause) if exc.cause else None
        logger.error("request.failed", extra=extra, exc_info=exc.cause or exc)
    else:
        logger.warning("request.rejected", extra=extra)

    return error_response(exc)


async def fallback_handler(request: Request, exc: Exception):

    rid = request_id_ctx.get(None)

    logger.error(
        "unexpected.exception",
        extra={
            "path": request.url.path,
            "method": request.method,
            "request_id": rid,
        },
        exc_info=exc,
    )

    return error_response(AppError.internal(exc))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    fields: Dict[str, str] = {}
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        fields[".".join(loc) or "body"] = err.get("msg", "invalid value")

    logger.warning(
        "request.validation_failed",
        extra={
            "fields": fields,
            "path": request.url.path,
        },
    )

    return error_response(AppError.invalid_input("invalid request", fields=fields))


async def http_exception_handler(request: Request, exc: HTTPException):

    kind = STATUS_KIND.get(exc.status_code)
    if kind is None:
        kind = ErrorKind.INTERNAL if exc.status_code >= 500 else ErrorKind.INVALID_INPUT
    message = exc.detail if isinstance(exc.detail, str) else "request failed"

    payload = build_error(kind.value, message)
    return json_error(payload, status_code=exc.status_code, headers=getattr(exc, "headers", None))


def register_all_exceptions(app: FastAPI):

    app.add_exception_handler(
        AppError,
        app_error_handler
    )

    app.add_exception_handler(
        Exception, # catch all unidentified/unhandled exceptions
        fallback_handler
    )

    app.add_exception_handler(
        RequestValidationError,
        validation_exception_handler
    )

    app.add_exception_handler(
        HTTPException,
        http_exception_handler
    )
