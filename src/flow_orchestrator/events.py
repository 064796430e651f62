"""
Lifecycle notifications for executions.

Listeners are registered explicitly on the queue; there is no process-wide
emitter. Every execution emits `started` exactly once before its first node
dispatch and exactly one of `completed` / `failed` when it becomes terminal.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Iterable, List, Optional, Protocol, runtime_checkable

from .observability import get_logger, with_trace_context

if TYPE_CHECKING:
    from .models import Execution, NodeResult, WorkflowNode


logger = logging.getLogger(__name__)


@runtime_checkable
class ExecutionListener(Protocol):
    """Observer of execution lifecycle events. All methods are optional."""

    def on_execution_started(self, execution_id: str, workflow_id: str) -> None: ...

    def on_execution_completed(self, execution: "Execution") -> None: ...

    def on_execution_failed(self, execution: "Execution") -> None: ...

    def on_node_executed(self, execution: "Execution", node: "WorkflowNode", result: "NodeResult") -> None: ...


class EventBus:
    """Fans events out to registered listeners."""

    def __init__(self, listeners: Optional[Iterable[object]] = None):
        self._listeners: List[object] = list(listeners or [])
        self._lock = threading.Lock()

    def subscribe(self, listener: object) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: object) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _emit(self, method: str, *args: object) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            callback = getattr(listener, method, None)
            if callback is None:
                continue
            try:
                callback(*args)
            except Exception:
                # A broken listener must not change the outcome of a run
                logger.exception(f"Listener {listener!r} failed in {method}")

    def execution_started(self, execution_id: str, workflow_id: str) -> None:
        self._emit("on_execution_started", execution_id, workflow_id)

    def execution_completed(self, execution: "Execution") -> None:
        self._emit("on_execution_completed", execution)

    def execution_failed(self, execution: "Execution") -> None:
        self._emit("on_execution_failed", execution)

    def node_executed(self, execution: "Execution", node: "WorkflowNode", result: "NodeResult") -> None:
        self._emit("on_node_executed", execution, node, result)


class LoggingListener:
    """Logs lifecycle events with execution context."""

    def __init__(self, name: str = "flow_orchestrator.lifecycle"):
        self._logger = get_logger(name)

    def on_execution_started(self, execution_id, workflow_id):
        self._logger.info(
            "Execution started",
            extra=with_trace_context(execution_id=execution_id, workflow_id=workflow_id),
        )

    def on_execution_completed(self, execution):
        self._logger.info(
            f"Execution completed in {execution.duration_ms or 0:.1f}ms",
            extra=with_trace_context(execution_id=execution.id, workflow_id=execution.workflow_id),
        )

    def on_execution_failed(self, execution):
        self._logger.error(
            f"Execution failed: {execution.error}",
            extra=with_trace_context(execution_id=execution.id, workflow_id=execution.workflow_id),
        )

    def on_node_executed(self, execution, node, result):
        status = "success" if result.success else "error"
        self._logger.debug(
            f"Node {node.name} ({node.type}) {status} in {result.duration_ms:.1f}ms",
            extra=with_trace_context(
                execution_id=execution.id,
                workflow_id=execution.workflow_id,
                node_id=node.id,
                node_type=node.type,
            ),
        )


__all__ = ["ExecutionListener", "EventBus", "LoggingListener"]
