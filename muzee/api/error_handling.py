from __future__ import annotations

from typing import Any, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from muzee.api.schemas import ErrorBody, FieldError
from muzee.logging import get_logger
from muzee.service.errors import InvalidRequestError, ServerError, ServiceError
from muzee.storage.errors import CacheUnavailable, ConstraintViolation

logger = get_logger(__name__)

_STATUS_TO_CODE = {
    400: "validation_error",
    401: "unauthorized",
    404: "not_found",
    409: "conflict",
    429: "rate_limit_exceeded",
    500: "internal_server_error",
}


def _error_code_for_status(status_code: int) -> str:
    default = "internal_server_error" if status_code >= 500 else "invalid_request"
    return _STATUS_TO_CODE.get(status_code, default)


def _error_response(
    status_code: int,
    message: str,
    details: Optional[List[FieldError]] = None,
    code: str | None = None,
) -> JSONResponse:
    error_code = code or _error_code_for_status(status_code)
    body = ErrorBody(error=error_code, message=message, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def _field_errors(errors: List[dict[str, Any]]) -> List[FieldError]:
    details: List[FieldError] = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query")]
        message = str(err.get("msg", "invalid value"))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        details.append(FieldError(field=".".join(loc) or "body", message=message))
    return details


def register_exception_handlers(app: FastAPI) -> None:
    """Install consistent exception handlers for domain and storage errors."""

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = list(exc.errors())
        if any(err.get("type") == "json_invalid" for err in errors):
            logger.info("invalid_request_body", path=request.url.path)
            return _error_response(
                400, InvalidRequestError.default_message, code=InvalidRequestError.error_code
            )
        details = _field_errors(errors)
        logger.info(
            "request_validation_failed",
            path=request.url.path,
            fields=[d.field for d in details],
        )
        return _error_response(
            400, "Request validation failed", details, code="validation_error"
        )

    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            "service_error",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            error_code=exc.error_code,
            message=exc.message,
            detail=exc.detail,
        )
        return _error_response(exc.status_code, exc.message, code=exc.error_code)

    @app.exception_handler(ConstraintViolation)
    async def handle_constraint_violation(request: Request, exc: ConstraintViolation):
        logger.warning(
            "constraint_violation",
            path=request.url.path,
            method=request.method,
            message=exc.message,
            detail=exc.detail,
        )
        return _error_response(409, exc.message, code="conflict")

    @app.exception_handler(CacheUnavailable)
    async def handle_cache_unavailable(request: Request, exc: CacheUnavailable):
        logger.error(
            "cache_unavailable",
            path=request.url.path,
            method=request.method,
            operation=exc.operation,
            error=str(exc.cause) if exc.cause else None,
        )
        return _error_response(500, ServerError.default_message, code=ServerError.error_code)

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "HTTP error"
        if exc.status_code >= 500:
            logger.error(
                "http_error",
                path=request.url.path,
                method=request.method,
                status_code=exc.status_code,
                message=message,
            )
        return _error_response(exc.status_code, message)

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        logger.exception(
            "unhandled_exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        )
        return _error_response(500, ServerError.default_message, code=ServerError.error_code)
