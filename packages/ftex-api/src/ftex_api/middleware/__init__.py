"""API middleware components."""

from .exceptions import (
    ExceptionHandlerMiddleware,
    RFC7807Error,
    create_error_response,
    register_exception_handlers,
)
from .logging import (
    CorrelationIdFilter,
    JSONFormatter,
    LoggingConfig,
    StructuredLoggingMiddleware,
    get_correlation_id,
    setup_logging,
)

__all__ = [
    "CorrelationIdFilter",
    "ExceptionHandlerMiddleware",
    "JSONFormatter",
    "LoggingConfig",
    "RFC7807Error",
    "StructuredLoggingMiddleware",
    "create_error_response",
    "get_correlation_id",
    "register_exception_handlers",
    "setup_logging",
]
