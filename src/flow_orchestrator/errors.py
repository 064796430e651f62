"""
Errors - Exception taxonomy for workflow orchestration.

Caller-visible failures are validation errors at submission time and
timeout / not-found errors from the wait API. Node failures are captured
as data (NodeResult.success = False) and never escape the dispatcher.
"""

from __future__ import annotations

from typing import Any, List, Optional


class OrchestratorError(Exception):
    """Base exception for orchestration errors."""

    pass


class ValidationError(OrchestratorError):
    """Malformed workflow graph. Raised before scheduling, never retried."""

    def __init__(self, errors: List[str] | str) -> None:
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__(f"Workflow validation failed: {', '.join(self.errors)}")


class CycleDetectedError(ValidationError):
    """A back-edge was found while planning the graph."""

    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Circular dependency detected at node: {node_id}")


class NodeExecutionError(OrchestratorError):
    """A handler raised while executing a node."""

    def __init__(
        self,
        message: str,
        node_id: Optional[str] = None,
        node_name: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.message = message
        self.node_id = node_id
        self.node_name = node_name
        self.cause = cause
        super().__init__(message)


class HandlerError(NodeExecutionError):
    """Handler-side configuration or operation failure."""

    pass


class HttpRequestError(HandlerError):
    """Non-2xx response from an HTTP node."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
        self.url = url


class ExecutionTimeoutError(OrchestratorError):
    """The waiter gave up. The underlying run is not cancelled."""

    def __init__(self, execution_id: str, timeout: float) -> None:
        self.execution_id = execution_id
        self.timeout = timeout
        super().__init__(f"Execution {execution_id} timeout after {timeout:g}s")


class ExecutionNotFoundError(OrchestratorError):
    """No active execution with this id."""

    def __init__(self, execution_id: str) -> None:
        self.execution_id = execution_id
        super().__init__(f"Execution {execution_id} not found")


class RetryExhaustedError(OrchestratorError):
    """Run failed on every allowed attempt."""

    def __init__(self, execution_id: str, attempts: int, last_error: Any = None) -> None:
        self.execution_id = execution_id
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Execution {execution_id} failed after {attempts} attempt(s): {last_error}"
        )


__all__ = [
    "OrchestratorError",
    "ValidationError",
    "CycleDetectedError",
    "NodeExecutionError",
    "HandlerError",
    "HttpRequestError",
    "ExecutionTimeoutError",
    "ExecutionNotFoundError",
    "RetryExhaustedError",
]
