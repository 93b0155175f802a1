"""Middleware for observability: correlation ids and request logging."""

import logging
import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from yearlists.infrastructure.observability.logging import set_correlation_id

logger = logging.getLogger(__name__)

CORRELATION_ID_HEADER = "X-Correlation-ID"


# Hey future me, this runs around every request. It takes the caller's X-Correlation-ID (or
# makes one up) and puts it in the context var, so every log line of the request and of
# the playcount refresh it spawns carries the same id. The id is also parked on
# request.state: the catch-all 500 handler runs OUTSIDE this middleware and cannot see the
# context var, but it shares the request scope.
class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Assign a correlation id per request and log request/response pairs."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        correlation_id = set_correlation_id(request.headers.get(CORRELATION_ID_HEADER))
        request.state.correlation_id = correlation_id

        method = request.method
        path = request.url.path
        start_time = time.monotonic()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "Request failed: %s %s",
                method,
                path,
                extra={
                    "method": method,
                    "path": path,
                    "duration_ms": int((time.monotonic() - start_time) * 1000),
                    "error_type": type(e).__name__,
                },
            )
            raise

        logger.info(
            "%s %s -> %s",
            method,
            path,
            response.status_code,
            extra={
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "duration_ms": int((time.monotonic() - start_time) * 1000),
            },
        )
        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response
