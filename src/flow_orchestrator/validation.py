"""
Workflow validation - structural checks run before anything is scheduled.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional

from .errors import ValidationError
from .models import WorkflowDefinition
from .planner import plan_workflow

if TYPE_CHECKING:
    from .dispatcher import NodeDispatcher


logger = logging.getLogger(__name__)


def collect_errors(
    workflow: WorkflowDefinition,
    dispatcher: Optional["NodeDispatcher"] = None,
) -> List[str]:
    """Return every structural and type-specific problem found."""
    errors: List[str] = []

    if not workflow.nodes:
        errors.append("Workflow has no nodes")

    seen: set[str] = set()
    for node in workflow.nodes:
        if not node.id:
            errors.append(f"Node {node.name or '?'} missing ID")
        if not node.type:
            errors.append(f"Node {node.id or '?'} missing type")
        if not node.name:
            errors.append(f"Node {node.id or '?'} missing name")
        if node.id:
            if node.id in seen:
                errors.append(f"Duplicate node ID: {node.id}")
            seen.add(node.id)
        if dispatcher is not None and node.type:
            errors.extend(dispatcher.validate_node(node))

    for source in workflow.connections:
        if source not in seen:
            errors.append(f"Connection source node not found: {source}")
    for conn in workflow.iter_connections():
        if conn.target not in seen:
            errors.append(f"Connection target node not found: {conn.target}")

    return errors


def validate_workflow(
    workflow: WorkflowDefinition,
    dispatcher: Optional["NodeDispatcher"] = None,
) -> List[str]:
    """
    Validate a workflow and compute its execution plan.

    Returns:
        The execution plan

    Raises:
        ValidationError: Missing node fields, duplicate ids, dangling
            connections or handler-specific problems
        CycleDetectedError: The connections form a cycle
    """
    errors = collect_errors(workflow, dispatcher)
    if errors:
        logger.warning(f"Workflow {workflow.id or workflow.name} rejected: {errors}")
        raise ValidationError(errors)
    return plan_workflow(workflow)


__all__ = ["collect_errors", "validate_workflow"]
