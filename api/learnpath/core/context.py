"""Request and operation context using contextvars.

Every log event picks up these values through the structlog context
processor, so a per-student failure deep inside a bulk reconciliation can be
traced back to the request and the content event that triggered it.
"""

from contextvars import ContextVar
from typing import Any
from uuid import UUID, uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
operation_var: ContextVar[str | None] = ContextVar("operation", default=None)
operation_entity_var: ContextVar[str | None] = ContextVar(
    "operation_entity", default=None
)


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid4())


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID for the current context.

    Args:
        request_id: Optional request ID. If not provided, generates a new one.

    Returns:
        The request ID that was set.
    """
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


def get_correlation_id() -> str | None:
    """Get the current correlation ID."""
    return correlation_id_var.get()


def set_correlation_id(correlation_id: str | None) -> None:
    """Set the correlation ID for the current context."""
    correlation_id_var.set(correlation_id)


def get_context() -> dict[str, Any]:
    """Get all context variables as a dictionary."""
    context: dict[str, Any] = {}

    request_id = get_request_id()
    if request_id:
        context["request_id"] = request_id

    correlation_id = get_correlation_id()
    if correlation_id:
        context["correlation_id"] = correlation_id

    operation = operation_var.get()
    if operation:
        context["operation"] = operation
        context["operation_entity"] = operation_entity_var.get()

    return context


def clear_context() -> None:
    """Clear all context variables.

    Called at the end of each request to prevent leakage between requests.
    """
    request_id_var.set("")
    correlation_id_var.set(None)
    operation_var.set(None)
    operation_entity_var.set(None)


class OperationContext:
    """Tag every log event emitted inside a bulk progress operation.

    Usage:
        with OperationContext("module_deleted", module_id):
            await pool.run_batch(...)
    """

    def __init__(self, operation: str, entity_id: UUID | str | None = None) -> None:
        self.operation = operation
        self.entity_id = str(entity_id) if entity_id is not None else None
        self._tokens: list[Any] = []

    def __enter__(self) -> "OperationContext":
        self._tokens = [
            operation_var.set(self.operation),
            operation_entity_var.set(self.entity_id),
        ]
        return self

    def __exit__(self, *_: object) -> None:
        operation_token, entity_token = self._tokens
        operation_entity_var.reset(entity_token)
        operation_var.reset(operation_token)
