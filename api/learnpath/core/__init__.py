# Core infrastructure
from learnpath.core.context import (
    OperationContext,
    clear_context,
    get_context,
    get_correlation_id,
    get_request_id,
    set_correlation_id,
    set_request_id,
)
from learnpath.core.database import init_async_cassandra, shutdown_async_cassandra
from learnpath.core.logging import configure_structlog, get_logger
from learnpath.core.middleware import RequestContextMiddleware


__all__ = [
    "OperationContext",
    "RequestContextMiddleware",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_correlation_id",
    "get_logger",
    "get_request_id",
    "init_async_cassandra",
    "set_correlation_id",
    "set_request_id",
    "shutdown_async_cassandra",
]
