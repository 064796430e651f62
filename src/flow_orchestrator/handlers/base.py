"""
NodeHandler - Base class for node type strategies.

A handler implements one node type's behavior:

    execute(node, items, context) -> items

Handlers receive the node definition, the input items gathered from upstream
nodes and a NodeContext. They return output items or raise. Queueing,
retries and failure policy are the engine's concern, never the handler's.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, TypedDict

from ..errors import HandlerError
from ..models import Item, WorkflowNode, utcnow

if TYPE_CHECKING:
    from ..models import Execution
    from .http import HttpClient


logger = logging.getLogger(__name__)


class NodeExecutionData(TypedDict, total=False):
    """
    Single item of node output.

    Format: {"json": {...}, "binary": {...}, "pairedItem": {"item": 0}}
    """
    json: Dict[str, Any]
    binary: Optional[Dict[str, Any]]
    pairedItem: Optional[Dict[str, int]]


# ==============================================================================
# NodeContext - Runtime context for a node dispatch
# ==============================================================================

class NodeContext:
    """
    Runtime context provided to handlers during execution.

    Provides access to:
    - Execution identity and input payload
    - Outputs of already executed nodes
    - Node parameters
    - HTTP client
    """

    def __init__(
        self,
        execution: Optional["Execution"] = None,
        http_client: Optional["HttpClient"] = None,
        started_at: Optional[datetime] = None,
    ) -> None:
        self._execution = execution
        self._http_client = http_client
        self.started_at = started_at or (execution.started_at if execution else None) or utcnow()

    @property
    def execution_id(self) -> Optional[str]:
        return self._execution.id if self._execution else None

    @property
    def workflow_id(self) -> Optional[str]:
        return self._execution.workflow_id if self._execution else None

    @property
    def input_data(self) -> Dict[str, Any]:
        return self._execution.input_data if self._execution else {}

    def get_node_output(self, node_id: str) -> List[Item]:
        """Items produced by an already executed node ([] if none)."""
        if self._execution is None:
            return []
        result = self._execution.results.get(node_id)
        return list(result.items) if result and result.success else []

    def get_parameter(self, node: WorkflowNode, name: str, default: Any = None) -> Any:
        """Get parameter value."""
        value = node.parameters.get(name, default)
        return default if value is None else value

    def get_logger(self, node: WorkflowNode) -> logging.Logger:
        return logging.getLogger(f"node.{node.type}")

    @property
    def http(self) -> "HttpClient":
        if self._http_client is None:
            from .http import HttpClient
            self._http_client = HttpClient()
        return self._http_client


# ==============================================================================
# NodeHandler - Abstract base class
# ==============================================================================

class NodeHandler(ABC):
    """
    Abstract base class for node type handlers.

    Handlers define:
    - type: Node type tag (e.g., "n8n-nodes-base.httpRequest")
    - description: Node metadata dict

    And implement execute() which processes input items.

    Example:

        class UppercaseHandler(NodeHandler):
            type = "custom.uppercase"

            def execute(self, node, items, context):
                field = context.get_parameter(node, "field", "text")
                return [
                    {"json": {**item["json"], field: item["json"][field].upper()}}
                    for item in items
                ]
    """

    type: str = "base"

    description: Dict[str, Any] = {
        "displayName": "Base Node",
        "name": "base",
        "group": [],
        "version": 1,
        "inputs": ["main"],
        "outputs": ["main"],
    }

    @abstractmethod
    def execute(
        self,
        node: WorkflowNode,
        items: List[Item],
        context: NodeContext,
    ) -> List[NodeExecutionData]:
        """
        Execute the node.

        Returns:
            Output items, each with a 'json' key

        Raises:
            HandlerError: On operation failure
        """
        raise NotImplementedError

    def validate(self, node: WorkflowNode) -> List[str]:
        """Return configuration problems for this node (empty when valid)."""
        return []

    def require_parameter(self, node: WorkflowNode, name: str, message: Optional[str] = None) -> Any:
        value = node.parameters.get(name)
        if value in (None, ""):
            raise HandlerError(
                message or f"{node.name} missing '{name}' parameter",
                node_id=node.id,
                node_name=node.name,
            )
        return value

    def get_definition(self) -> Dict[str, Any]:
        """Get handler definition for listings."""
        return {
            "type": self.type,
            "description": self.description,
        }


HandlerFunc = Callable[[WorkflowNode, List[Item], NodeContext], List[Item]]


class CallableHandler(NodeHandler):
    """Adapts a plain callable (node, items, context) -> items."""

    def __init__(self, func: HandlerFunc, node_type: str = "function") -> None:
        self._func = func
        self.type = node_type
        self.description = {
            **NodeHandler.description,
            "displayName": getattr(func, "__name__", node_type),
            "name": node_type,
        }

    def execute(self, node, items, context):
        return self._func(node, items, context)


class PassThroughHandler(NodeHandler):
    """
    Fallback for node types without a registered handler.

    Returns input items unchanged, annotated with the node that ran them.
    The timestamp is the execution start, so repeated dispatches of the same
    node and items yield identical output.
    """

    type = "*"
    description = {
        **NodeHandler.description,
        "displayName": "Generic",
        "name": "generic",
    }

    def execute(self, node, items, context):
        timestamp = context.started_at.isoformat()
        return [
            {
                **item,
                "_nodeExecuted": {
                    "id": node.id,
                    "name": node.name,
                    "type": node.type,
                    "timestamp": timestamp,
                },
            }
            for item in items
        ]


__all__ = [
    "NodeContext",
    "NodeExecutionData",
    "NodeHandler",
    "CallableHandler",
    "PassThroughHandler",
    "HandlerFunc",
]
