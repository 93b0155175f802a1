"""Transaction runner: one unit of work, all or nothing."""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from yearlists.domain.exceptions import TransactionAbort
from yearlists.infrastructure.persistence.database import Database

logger = logging.getLogger(__name__)

T = TypeVar("T")


# Hey future me - EVERY mutating list operation goes through here. The body gets a session
# that is already inside a transaction; whatever it returns is the operation result once
# the commit succeeds. Raising TransactionAbort (or a subclass) is the normal way to reject
# a request: it rolls back and propagates unchanged, and it is NOT logged as a failure.
# Anything else is a real failure and gets logged with traceback before it propagates.
async def with_transaction(
    database: Database,
    work: Callable[[AsyncSession], Awaitable[T]],
    operation: str | None = None,
) -> T:
    """Run `work` inside a single transaction.

    Args:
        database: Database providing the session scope
        work: Async callable receiving the transactional session
        operation: Name used in log records (defaults to the callable's name)

    Returns:
        Whatever `work` returned, after commit

    Raises:
        TransactionAbort: Expected rejections, re-raised after rollback
        Exception: Any other failure, re-raised after rollback
    """
    op_name = operation or getattr(work, "__name__", "transaction")
    try:
        async with database.session_scope() as session:
            return await work(session)
    except TransactionAbort as e:
        logger.info(
            "Transaction aborted: %s",
            e.message,
            extra={
                "operation": op_name,
                "status_code": e.status_code,
                "error_type": type(e).__name__,
            },
        )
        raise
    except Exception:
        logger.error(
            "Transaction failed: %s",
            op_name,
            exc_info=True,
            extra={"operation": op_name},
        )
        raise
