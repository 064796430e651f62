"""
Node Dispatcher - Resolves node types to handlers and runs them.

Supports handler registration via:
1. register_handler(): Manual registration (instance, class or callable)
2. register_builtin_handlers(): The bundled node types
3. discover_entry_points(): Plugin handler packs

A dispatch never raises: handler failures and missing handlers both end up
as a NodeResult.
"""

from __future__ import annotations

import inspect
import logging
import time
import traceback
from importlib.metadata import entry_points
from typing import Any, Dict, Iterable, List, Optional, Type, Union

from .errors import NodeExecutionError
from .handlers import BUILTIN_HANDLERS
from .handlers.base import CallableHandler, HandlerFunc, NodeContext, NodeHandler, PassThroughHandler
from .models import Connection, Execution, Item, NodeResult, WorkflowNode


logger = logging.getLogger(__name__)

# Entry point group for handler packs
HANDLER_ENTRY_POINT = "flow_orchestrator.handlers"

HandlerLike = Union[NodeHandler, Type[NodeHandler], HandlerFunc]


def _normalize_items(output: Any) -> List[Item]:
    """Coerce handler output into a list of {"json": ...} items. Strings are one scalar item."""
    if output is None:
        return []
    if isinstance(output, (dict, str, bytes)):
        output = [output]
    items: List[Item] = []
    for entry in output:
        if isinstance(entry, dict) and "json" in entry:
            items.append(entry)
        elif isinstance(entry, dict):
            items.append({"json": entry})
        else:
            items.append({"json": {"data": entry}})
    return items


def _wrap_node_error(error: Exception, node: WorkflowNode) -> NodeExecutionError:
    """Handler errors pass through; anything else is wrapped as NodeExecutionError."""
    if isinstance(error, NodeExecutionError):
        error.node_id = error.node_id or node.id
        error.node_name = error.node_name or node.name
        return error
    return NodeExecutionError(
        str(error) or type(error).__name__,
        node_id=node.id,
        node_name=node.name,
        cause=error,
    )


class NodeDispatcher:
    """
    Registry of node type handlers plus the dispatch entry point.

    Usage:
        dispatcher = NodeDispatcher()
        dispatcher.register_builtin_handlers()
        dispatcher.register_handler("custom.echo", lambda node, items, ctx: items)

        result = dispatcher.dispatch(node, [{"json": {}}], context)
    """

    def __init__(self, fallback: Optional[NodeHandler] = None):
        self._handlers: Dict[str, NodeHandler] = {}
        self._fallback = fallback or PassThroughHandler()
        self._discovered = False

    # ==== Registration ====

    def register_handler(self, node_type: str, handler: HandlerLike) -> NodeHandler:
        """
        Register a handler for a node type. The last registration wins.

        Args:
            node_type: Exact node type tag
            handler: NodeHandler instance, NodeHandler subclass, or a callable
                (node, items, context) -> items

        Returns:
            The registered handler instance
        """
        if inspect.isclass(handler) and issubclass(handler, NodeHandler):
            instance: NodeHandler = handler()
        elif isinstance(handler, NodeHandler):
            instance = handler
        elif callable(handler):
            instance = CallableHandler(handler, node_type)
        else:
            raise TypeError(f"Handler for {node_type} must be a NodeHandler or callable")

        if node_type in self._handlers:
            logger.debug(f"Replacing handler for node type: {node_type}")
        self._handlers[node_type] = instance
        logger.debug(f"Registered handler: {node_type}")
        return instance

    def register_builtin_handlers(self) -> int:
        """Register the bundled node types. Returns number registered."""
        for handler_class in BUILTIN_HANDLERS:
            self.register_handler(handler_class.type, handler_class)
        return len(BUILTIN_HANDLERS)

    def discover_entry_points(self, force: bool = False) -> int:
        """
        Discover handler packs via entry points.

        Entry points are declared in the pack's pyproject.toml:

            [project.entry-points."flow_orchestrator.handlers"]
            mypack = "mypack:register_handlers"

        The entry point is a function returning {node_type: handler}, or a
        NodeHandler subclass.

        Returns:
            Number of handlers registered
        """
        if self._discovered and not force:
            return 0

        count = 0
        for ep in entry_points(group=HANDLER_ENTRY_POINT):
            try:
                loaded = ep.load()
                if inspect.isclass(loaded) and issubclass(loaded, NodeHandler):
                    self.register_handler(loaded.type, loaded)
                    count += 1
                    continue
                handlers = loaded() if callable(loaded) else loaded
                for node_type, handler in dict(handlers).items():
                    self.register_handler(node_type, handler)
                    count += 1
            except Exception as e:
                logger.warning(f"Failed to load handler pack '{ep.name}': {e}")

        self._discovered = True
        logger.info(f"Discovered {count} handlers from entry points")
        return count

    # ==== Lookup ====

    def get_handler(self, node_type: str) -> NodeHandler:
        """Exact type match, else the fallback handler."""
        return self._handlers.get(node_type, self._fallback)

    def has_handler(self, node_type: str) -> bool:
        return node_type in self._handlers

    def list_handler_types(self) -> List[str]:
        return sorted(self._handlers)

    def list_handlers(self) -> List[Dict[str, Any]]:
        return [self._handlers[t].get_definition() for t in self.list_handler_types()]

    def validate_node(self, node: WorkflowNode) -> List[str]:
        """Type-specific configuration checks from the registered handler."""
        handler = self._handlers.get(node.type)
        if handler is None:
            return []
        return list(handler.validate(node))

    # ==== Dispatch ====

    def dispatch(
        self,
        node: WorkflowNode,
        items: List[Item],
        context: NodeContext,
    ) -> NodeResult:
        """
        Run a node through its handler.

        Any exception is captured into NodeResult(success=False).
        """
        handler = self.get_handler(node.type)
        if handler is self._fallback:
            logger.debug(f"Executing generic handler for: {node.type}")

        start_time = time.perf_counter()
        try:
            output = handler.execute(node, list(items), context)
            output_items = _normalize_items(output)
        except Exception as e:
            duration = (time.perf_counter() - start_time) * 1000
            logger.warning(
                f"Node execution failed: {node.name} ({node.type}): {e}",
                extra={"node_id": node.id, "node_type": node.type},
            )
            logger.debug(traceback.format_exc())
            error = _wrap_node_error(e, node)
            return NodeResult(
                node_id=node.id,
                node_name=node.name,
                success=False,
                error=str(error) or type(error).__name__,
                error_type=type(error).__name__,
                cause_type=type(error.cause or error).__name__,
                duration_ms=duration,
                exception=error,
            )

        return NodeResult(
            node_id=node.id,
            node_name=node.name,
            success=True,
            items=output_items,
            duration_ms=(time.perf_counter() - start_time) * 1000,
        )


def get_node_input_data(
    execution: Execution,
    node: WorkflowNode,
    connections: Iterable[Connection],
) -> List[Item]:
    """
    Gather input items for a node.

    Concatenates the stored output of every source node with an edge into
    `node`. With no upstream data, the first node of the plan is seeded with
    the execution payload; any other node gets a single empty item.
    """
    inputs: List[Item] = []
    for conn in connections:
        if conn.target != node.id:
            continue
        result = execution.results.get(conn.source)
        if result and result.items:
            inputs.extend(result.items)

    if inputs:
        return inputs
    if execution.plan and execution.plan[0] == node.id:
        return [{"json": dict(execution.input_data)}]
    return [{"json": {}}]


__all__ = [
    "NodeDispatcher",
    "HandlerLike",
    "get_node_input_data",
    "HANDLER_ENTRY_POINT",
]
