"""Observability infrastructure for structured logging."""

from yearlists.infrastructure.observability.logger_template import log_operation
from yearlists.infrastructure.observability.logging import (
    configure_logging,
    configure_logging_from_settings,
    get_correlation_id,
    set_correlation_id,
)
from yearlists.infrastructure.observability.middleware import (
    CORRELATION_ID_HEADER,
    CorrelationIdMiddleware,
)

__all__ = [
    "CORRELATION_ID_HEADER",
    "CorrelationIdMiddleware",
    "configure_logging",
    "configure_logging_from_settings",
    "get_correlation_id",
    "log_operation",
    "set_correlation_id",
]
