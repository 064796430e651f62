"""
Graph Planner - Linear execution order for a workflow graph.

Nodes of one run execute strictly sequentially, so planning reduces to a
deterministic topological order over the declared connections.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Sequence, Set

from .errors import CycleDetectedError
from .models import Connection, WorkflowDefinition, WorkflowNode


logger = logging.getLogger(__name__)


def _outgoing_map(node_ids: Sequence[str], connections: Iterable[Connection]) -> Dict[str, List[str]]:
    """Map node id -> declared successor ids (members only, no duplicates)."""
    members = set(node_ids)
    outgoing: Dict[str, List[str]] = {node_id: [] for node_id in node_ids}
    for conn in connections:
        if conn.source not in members or conn.target not in members:
            continue
        successors = outgoing[conn.source]
        if conn.target not in successors:
            successors.append(conn.target)
    return outgoing


def _traverse(
    root: str,
    outgoing: Dict[str, List[str]],
    visiting: Set[str],
    visited: Set[str],
    postorder: List[str],
) -> None:
    """
    Iterative DFS from root, appending nodes to postorder once all their
    successors are finished.

    Successors are explored last-to-first so that, once the post-order is
    reversed, siblings appear in declared order.
    """
    if root in visited:
        return
    if root in visiting:
        raise CycleDetectedError(root)

    visiting.add(root)
    stack = [(root, iter(list(reversed(outgoing[root]))))]

    while stack:
        node_id, successors = stack[-1]
        advanced = False
        for successor in successors:
            if successor in visited:
                continue
            if successor in visiting:
                raise CycleDetectedError(successor)
            visiting.add(successor)
            stack.append((successor, iter(list(reversed(outgoing[successor])))))
            advanced = True
            break
        if advanced:
            continue
        stack.pop()
        visiting.discard(node_id)
        visited.add(node_id)
        postorder.append(node_id)


def build_execution_plan(
    nodes: Sequence[WorkflowNode],
    connections: Iterable[Connection],
) -> List[str]:
    """
    Build the execution order for a workflow.

    Start nodes (no incoming connection) are traversed depth-first along their
    outgoing connections; a node is placed only after every node that feeds it
    on the traversed paths. Nodes not reachable from a start node are
    traversed afterwards and appended, so every node appears exactly once.

    Args:
        nodes: Workflow nodes in declaration order
        connections: Workflow connections in declaration order

    Returns:
        Node ids in execution order

    Raises:
        CycleDetectedError: If a back-edge is found
    """
    node_ids = [node.id for node in nodes]
    connections = list(connections)
    outgoing = _outgoing_map(node_ids, connections)

    targets = {c.target for c in connections if c.source in outgoing}
    start_nodes = [node_id for node_id in node_ids if node_id not in targets]

    visiting: Set[str] = set()
    visited: Set[str] = set()
    postorder: List[str] = []

    # Reverse post-order is a topological order; traversing start nodes
    # last-to-first keeps them in declared order after the reversal.
    for node_id in reversed(start_nodes):
        _traverse(node_id, outgoing, visiting, visited, postorder)
    plan = list(reversed(postorder))

    remaining = [node_id for node_id in node_ids if node_id not in visited]
    if remaining:
        fragment: List[str] = []
        for node_id in reversed(remaining):
            _traverse(node_id, outgoing, visiting, visited, fragment)
        plan.extend(reversed(fragment))

    logger.debug(f"Execution plan: {plan}")
    return plan


def plan_workflow(workflow: WorkflowDefinition) -> List[str]:
    """Build the execution plan for a workflow definition."""
    return build_execution_plan(workflow.nodes, workflow.iter_connections())


__all__ = [
    "build_execution_plan",
    "plan_workflow",
]
