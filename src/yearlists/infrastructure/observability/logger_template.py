"""Shared logger helpers.

USAGE:
    from yearlists.infrastructure.observability import log_operation

    logger = logging.getLogger(__name__)

    async with log_operation(logger, "bulk_update", user_id=user_id, entries=len(updates)):
        ...
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from yearlists.domain.exceptions import TransactionAbort


# Hey future me, this logs {operation}.started / .completed / .failed with duration_ms.
# The **context kwargs land as extra fields on all three records. On failure it re-raises,
# so wrap it INSIDE the code that decides how errors are reported, not around it.
# Expected rejections (TransactionAbort) are logged at INFO as .rejected, not as failures.
@asynccontextmanager
async def log_operation(
    logger: logging.Logger,
    operation: str,
    **context: Any,
) -> AsyncIterator[dict[str, Any]]:
    """Context manager for logging operation start/end with automatic timing.

    Yields a dict; keys added to it inside the block are included in the
    completion record (e.g. result counts).

    Example:
        >>> async with log_operation(logger, "bulk_update", user_id="u1") as fields:
        ...     fields["succeeded"] = 3
    """
    start = time.monotonic()
    result_fields: dict[str, Any] = {}
    logger.debug(f"{operation}.started", extra=context)

    try:
        yield result_fields
    except TransactionAbort as e:
        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            f"{operation}.rejected",
            extra={
                **context,
                "duration_ms": duration_ms,
                "status_code": e.status_code,
                "error": e.message,
            },
        )
        raise
    except Exception as e:
        duration_ms = int((time.monotonic() - start) * 1000)
        logger.error(
            f"{operation}.failed",
            extra={
                **context,
                "duration_ms": duration_ms,
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        raise

    duration_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        f"{operation}.completed",
        extra={**context, **result_fields, "duration_ms": duration_ms},
    )
