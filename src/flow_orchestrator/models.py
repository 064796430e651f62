"""
Workflow Models - Workflow definitions and execution records.

Workflow definitions follow the n8n workflow JSON format, with connections
keyed by node id:

    {source_id: {"main": [[{"node": target_id, "type": "main", "index": 0}]]}}
"""

from __future__ import annotations

import json
import random
import string
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .config import get_settings


Item = Dict[str, Any]


class ErrorPolicy(str, Enum):
    """What a run does when a node fails."""
    STOP = "stop"
    CONTINUE = "continue"


# n8n onError values
_ON_ERROR_ALIASES = {
    "stopWorkflow": ErrorPolicy.STOP,
    "continueRegularOutput": ErrorPolicy.CONTINUE,
    "continueErrorOutput": ErrorPolicy.CONTINUE,
}


class RetryScope(str, Enum):
    """What a run-level retry replays."""
    EXECUTION = "execution"
    NODE = "node"


class ExecutionStatus(str, Enum):
    """Overall execution status."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.SUCCESS, ExecutionStatus.ERROR)


# ==============================================================================
# Workflow definition
# ==============================================================================

class Connection(BaseModel):
    """
    Directed edge from a source node output to a target node.

    `output` is the output port type, `index` the output branch.
    """
    model_config = ConfigDict(frozen=True)

    source: str
    target: str
    output: str = "main"
    index: int = 0


class WorkflowNodePosition(BaseModel):
    """Node position in the canvas. n8n exports it as [x, y]."""
    x: float = 0
    y: float = 0

    @model_validator(mode="before")
    @classmethod
    def _from_pair(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)) and len(data) == 2:
            return {"x": data[0], "y": data[1]}
        return data


class WorkflowNode(BaseModel):
    """
    A node in a workflow.

    Frozen: a node cannot change once a run has started.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    id: str = Field("", description="Node ID (unique within workflow)")
    name: str = Field("", description="Display name")
    type: str = Field("", description="Node type (e.g., 'n8n-nodes-base.httpRequest')")

    type_version: float = Field(1, alias="typeVersion")
    position: WorkflowNodePosition = Field(default_factory=WorkflowNodePosition)
    parameters: Dict[str, Any] = Field(default_factory=dict)
    credentials: Dict[str, Any] = Field(default_factory=dict)
    disabled: bool = Field(False, description="If true, items pass through untouched")
    notes: Optional[str] = None

    # Failure policy; None defers to the run's continue_on_fail option
    error_policy: Optional[ErrorPolicy] = Field(None, alias="onError")

    # Node-level retry flags
    retry_on_fail: bool = Field(False, alias="retryOnFail")
    max_tries: int = Field(3, alias="maxTries", ge=1)
    wait_between_tries: int = Field(1000, alias="waitBetweenTries", ge=0, description="ms")

    @model_validator(mode="before")
    @classmethod
    def _legacy_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        policy = data.get("onError", data.get("error_policy"))
        if isinstance(policy, str) and policy in _ON_ERROR_ALIASES:
            data["onError"] = _ON_ERROR_ALIASES[policy]
            data.pop("error_policy", None)
        # Legacy n8n flag
        if policy is None and data.get("continueOnFail") is True:
            data["onError"] = ErrorPolicy.CONTINUE
        return data


class WorkflowSettings(BaseModel):
    """Workflow-level settings."""
    model_config = ConfigDict(extra="allow")

    timezone: str = Field("UTC")
    execution_timeout: int = Field(-1, alias="executionTimeout", description="-1 = no timeout")


class WorkflowDefinition(BaseModel):
    """
    Complete workflow definition.

    Matches n8n workflow JSON format.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    # Metadata
    id: Optional[str] = Field(None, description="Workflow ID")
    name: str = Field("Unnamed Workflow", description="Workflow name")
    active: bool = Field(False)

    # Structure
    nodes: List[WorkflowNode] = Field(default_factory=list)
    connections: Dict[str, Dict[str, List[List[Dict[str, Any]]]]] = Field(
        default_factory=dict,
        description="Node connections: {source: {type: [[{node, type, index}]]}}"
    )

    settings: WorkflowSettings = Field(default_factory=WorkflowSettings)
    tags: List[Any] = Field(default_factory=list)

    @field_validator("connections", mode="before")
    @classmethod
    def _normalize_branches(cls, value: Any) -> Any:
        """Accept a flat list per output type as a single branch."""
        if not isinstance(value, dict):
            return value
        normalized: Dict[str, Any] = {}
        for source, outputs in value.items():
            if not isinstance(outputs, dict):
                normalized[source] = outputs
                continue
            normalized[source] = {}
            for output_type, branches in outputs.items():
                if isinstance(branches, list) and any(isinstance(b, dict) for b in branches):
                    branches = [[b for b in branches if isinstance(b, dict)]]
                normalized[source][output_type] = branches
        return normalized

    def iter_connections(self) -> Iterator[Connection]:
        """Yield every connection in declaration order."""
        for source, outputs in self.connections.items():
            for output_type, branches in outputs.items():
                for index, branch in enumerate(branches):
                    for conn in branch:
                        target = conn.get("node")
                        if target is None:
                            continue
                        yield Connection(
                            source=source,
                            target=str(target),
                            output=output_type,
                            index=index,
                        )

    @property
    def node_ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        """Get node by id."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_start_nodes(self) -> List[WorkflowNode]:
        """Get nodes that have no incoming connections (entry points)."""
        targets = {conn.target for conn in self.iter_connections()}
        return [node for node in self.nodes if node.id not in targets]

    def get_downstream(self, node_id: str) -> List[str]:
        """Get ids of nodes connected to this node's outputs."""
        return [c.target for c in self.iter_connections() if c.source == node_id]

    def get_upstream(self, node_id: str) -> List[str]:
        """Get ids of nodes that connect to this node."""
        return [c.source for c in self.iter_connections() if c.target == node_id]


def parse_workflow(data: Dict[str, Any]) -> WorkflowDefinition:
    """Parse workflow JSON into WorkflowDefinition."""
    return WorkflowDefinition.model_validate(data)


def load_workflow(path: str | Path) -> WorkflowDefinition:
    """Load a workflow from a JSON or YAML file."""
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(text)
    else:
        data = json.loads(text)
    return parse_workflow(data)


# ==============================================================================
# Execution options and records
# ==============================================================================

class ExecutionOptions(BaseModel):
    """
    Per-run options.

    max_tries counts total attempts: max_tries=2 means one retry.
    Defaults come from settings.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    timeout: float = Field(default_factory=lambda: get_settings().execution_timeout_s, gt=0)
    retry_on_failure: bool = Field(True, alias="retryOnFailure")
    continue_on_fail: bool = Field(False, alias="continueOnFail")
    max_tries: int = Field(default_factory=lambda: get_settings().retry_attempts, alias="maxTries", ge=1)
    retry_delay: float = Field(default_factory=lambda: get_settings().retry_delay_s, alias="retryDelay", ge=0)
    retry_scope: RetryScope = Field(RetryScope.EXECUTION, alias="retryScope")


@dataclass
class NodeResult:
    """
    Result of dispatching a single node.
    """
    node_id: str
    node_name: str
    success: bool
    items: List[Item] = field(default_factory=list)
    error: Optional[str] = None
    error_type: Optional[str] = None
    cause_type: Optional[str] = None
    duration_ms: float = 0
    attempts: int = 1
    skipped: bool = False
    exception: Optional[Exception] = field(default=None, repr=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodeId": self.node_id,
            "nodeName": self.node_name,
            "success": self.success,
            "items": self.items,
            "error": self.error,
            "errorType": self.error_type,
            "causeType": self.cause_type,
            "durationMs": round(self.duration_ms, 3),
            "attempts": self.attempts,
            "skipped": self.skipped,
        }


def generate_execution_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"exec_{int(time.time() * 1000)}_{suffix}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Execution:
    """
    One run of a workflow against an input payload.

    Status and results are written by the worker running the execution;
    `_done` is set once the execution reaches a terminal state.
    """
    workflow: WorkflowDefinition
    input_data: Dict[str, Any]
    options: ExecutionOptions
    plan: List[str] = field(default_factory=list)
    id: str = field(default_factory=generate_execution_id)
    status: ExecutionStatus = ExecutionStatus.PENDING
    results: Dict[str, NodeResult] = field(default_factory=dict)
    error: Optional[str] = None
    error_type: Optional[str] = None
    error_node: Optional[str] = None
    exception: Optional[Exception] = field(default=None, repr=False)
    retry_count: int = 0
    current_node: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    duration_ms: Optional[float] = None
    _done: threading.Event = field(default_factory=threading.Event, repr=False)

    @property
    def workflow_id(self) -> str:
        return self.workflow.id or "unnamed"

    @property
    def is_terminal(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until terminal. Returns False on timeout."""
        return self._done.wait(timeout)

    def mark_done(self) -> None:
        self._done.set()

    @property
    def is_success(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS

    @property
    def is_error(self) -> bool:
        return self.status == ExecutionStatus.ERROR

    @property
    def attempts(self) -> int:
        return self.retry_count + 1

    def output_items(self) -> List[Item]:
        """Items produced by terminal nodes (no downstream), in plan order."""
        output: List[Item] = []
        for node_id in self.plan:
            if self.workflow.get_downstream(node_id):
                continue
            result = self.results.get(node_id)
            if result and result.success:
                output.extend(result.items)
        return output

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "workflowId": self.workflow_id,
            "workflowName": self.workflow.name,
            "status": self.status.value,
            "plan": list(self.plan),
            "results": {k: v.to_dict() for k, v in self.results.items()},
            "error": self.error,
            "errorType": self.error_type,
            "errorNode": self.error_node,
            "retryCount": self.retry_count,
            "createdAt": self.created_at.isoformat(),
            "startedAt": self.started_at.isoformat() if self.started_at else None,
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "durationMs": self.duration_ms,
        }


class ExecutionSummary(BaseModel):
    """Compact history record of a terminal execution."""

    id: str
    workflow_id: str
    status: ExecutionStatus
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    duration_ms: Optional[float] = None
    nodes_executed: int = 0
    retry_count: int = 0
    error: Optional[str] = None

    @classmethod
    def from_execution(cls, execution: Execution) -> "ExecutionSummary":
        return cls(
            id=execution.id,
            workflow_id=execution.workflow_id,
            status=execution.status,
            started_at=execution.started_at,
            finished_at=execution.finished_at,
            duration_ms=execution.duration_ms,
            nodes_executed=len(execution.results),
            retry_count=execution.retry_count,
            error=execution.error,
        )


class ExecutionStats(BaseModel):
    """Aggregate statistics for health and readiness checks."""

    active: int = 0
    queued: int = 0
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    avg_duration_ms: float = 0.0


__all__ = [
    "Item",
    "ErrorPolicy",
    "RetryScope",
    "ExecutionStatus",
    "Connection",
    "WorkflowNode",
    "WorkflowSettings",
    "WorkflowDefinition",
    "parse_workflow",
    "load_workflow",
    "ExecutionOptions",
    "NodeResult",
    "Execution",
    "ExecutionSummary",
    "ExecutionStats",
    "generate_execution_id",
]
