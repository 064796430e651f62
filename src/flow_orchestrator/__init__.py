"""
Flow Orchestrator - Run n8n-style workflow graphs.

Workflows are typed nodes joined by directed connections. The orchestrator
plans a topological order, dispatches each node to its handler, applies the
node's failure policy, retries failed runs and keeps a bounded history.

Usage:
    from flow_orchestrator import ExecutionQueue

    with ExecutionQueue() as queue:
        execution = queue.execute_workflow(workflow_json, {"x": 1})
"""

from .dispatcher import NodeDispatcher, get_node_input_data
from .errors import (
    CycleDetectedError,
    ExecutionNotFoundError,
    ExecutionTimeoutError,
    HandlerError,
    HttpRequestError,
    NodeExecutionError,
    OrchestratorError,
    RetryExhaustedError,
    ValidationError,
)
from .events import EventBus, ExecutionListener, LoggingListener
from .handlers import NodeContext, NodeHandler
from .models import (
    Connection,
    ErrorPolicy,
    Execution,
    ExecutionOptions,
    ExecutionStats,
    ExecutionStatus,
    ExecutionSummary,
    NodeResult,
    RetryScope,
    WorkflowDefinition,
    WorkflowNode,
    load_workflow,
    parse_workflow,
)
from .planner import build_execution_plan, plan_workflow
from .queue import ExecutionQueue
from .registry import ExecutionRegistry
from .retry import RetryController
from .validation import validate_workflow

__version__ = "0.1.0"

__all__ = [
    # Engine
    "ExecutionQueue",
    "ExecutionRegistry",
    "RetryController",
    "NodeDispatcher",
    "get_node_input_data",
    "build_execution_plan",
    "plan_workflow",
    "validate_workflow",
    # Models
    "WorkflowDefinition",
    "WorkflowNode",
    "Connection",
    "ErrorPolicy",
    "RetryScope",
    "ExecutionOptions",
    "ExecutionStatus",
    "Execution",
    "ExecutionSummary",
    "ExecutionStats",
    "NodeResult",
    "parse_workflow",
    "load_workflow",
    # Handlers
    "NodeHandler",
    "NodeContext",
    # Events
    "EventBus",
    "ExecutionListener",
    "LoggingListener",
    # Errors
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
