"""Exception handlers mapping list-service errors to JSON responses.

Expected rejections (TransactionAbort and subclasses) become their own status code
with the abort payload as body. Database failures and anything unexpected become an
opaque 500 carrying the correlation id set by CorrelationIdMiddleware.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from yearlists.domain.exceptions import (
    DuplicateEntityException,
    EntityNotFoundException,
    TransactionAbort,
    YearLockedError,
)
from yearlists.infrastructure.observability import get_correlation_id

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "An internal error occurred"


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Decode bytes inside pydantic error dicts so they serialize to JSON."""

    def _sanitize_value(value: Any) -> Any:
        if isinstance(value, bytes):
            return value.decode("utf-8", errors="replace")
        if isinstance(value, dict):
            return {k: _sanitize_value(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [_sanitize_value(item) for item in value]
        return value

    return [_sanitize_value(error) for error in errors]


def _abort_response(exc: TransactionAbort) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.payload)


def _internal_error_response(request: Request) -> JSONResponse:
    """Opaque 500 body, tagged with the request's correlation id when there is one."""
    content: dict[str, Any] = {"error": INTERNAL_ERROR_MESSAGE}
    correlation_id = getattr(request.state, "correlation_id", None) or get_correlation_id()
    if correlation_id:
        content["correlation_id"] = correlation_id
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


# Hey future me, register these during app setup, before any request arrives. Starlette picks
# the handler of the most specific class in the exception's MRO, so the subclass handlers below
# win over the TransactionAbort catch-all and only differ in how they log.
def register_exception_handlers(app: FastAPI) -> None:
    """Register handlers for list-service exceptions on a FastAPI app.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(EntityNotFoundException)
    async def entity_not_found_handler(
        request: Request, exc: EntityNotFoundException
    ) -> JSONResponse:
        logger.info(
            "Entity not found at %s: %s %s",
            request.url.path,
            exc.entity_type,
            exc.entity_id,
            extra={
                "path": request.url.path,
                "entity_type": exc.entity_type,
                "entity_id": str(exc.entity_id),
            },
        )
        return _abort_response(exc)

    @app.exception_handler(DuplicateEntityException)
    async def duplicate_entity_handler(
        request: Request, exc: DuplicateEntityException
    ) -> JSONResponse:
        logger.warning(
            "Duplicate entity at %s: %s %s",
            request.url.path,
            exc.entity_type,
            exc.entity_id,
            extra={
                "path": request.url.path,
                "entity_type": exc.entity_type,
                "entity_id": str(exc.entity_id),
            },
        )
        return _abort_response(exc)

    @app.exception_handler(YearLockedError)
    async def year_locked_handler(request: Request, exc: YearLockedError) -> JSONResponse:
        logger.info(
            "Year lock rejected %s at %s",
            exc.action,
            request.url.path,
            extra={"path": request.url.path, "year": exc.year, "action": exc.action},
        )
        return _abort_response(exc)

    @app.exception_handler(TransactionAbort)
    async def transaction_abort_handler(
        request: Request, exc: TransactionAbort
    ) -> JSONResponse:
        logger.info(
            "Request rejected at %s: %s",
            request.url.path,
            exc.message,
            extra={
                "path": request.url.path,
                "status_code": exc.status_code,
                "error_type": type(exc).__name__,
            },
        )
        return _abort_response(exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        sanitized = _sanitize_validation_errors(list(exc.errors()))
        logger.warning(
            "Request validation error at %s",
            request.url.path,
            extra={"path": request.url.path, "errors": sanitized},
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"error": "Invalid request", "detail": sanitized},
        )

    # The transaction runner already logged the traceback; this only hides the details.
    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error(
            "Database error at %s: %s",
            request.url.path,
            type(exc).__name__,
            extra={"path": request.url.path, "error_type": type(exc).__name__},
        )
        return _internal_error_response(request)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "Unhandled error at %s: %s",
            request.url.path,
            type(exc).__name__,
            exc_info=exc,
            extra={"path": request.url.path, "error_type": type(exc).__name__},
        )
        return _internal_error_response(request)
