"""Pytest configuration and fixtures."""
import os
import threading
import time

import pytest

# Set test environment variables
os.environ["FLOW_ENV"] = "test"
os.environ["FLOW_LOG_FORMAT"] = "text"
os.environ["FLOW_RETRY_DELAY_S"] = "0"
os.environ["FLOW_EXECUTION_TIMEOUT_S"] = "10"


def build_workflow(node_ids, edges=(), node_type="test.echo", overrides=None, workflow_id="wf-test"):
    """
    Build workflow JSON from node ids and (source, target) edges.

    `overrides` maps node id -> extra node fields (type, parameters, onError...).
    """
    overrides = overrides or {}
    nodes = [
        {"id": node_id, "name": node_id, "type": node_type, **overrides.get(node_id, {})}
        for node_id in node_ids
    ]
    connections = {}
    for source, target in edges:
        outputs = connections.setdefault(source, {"main": [[]]})
        outputs["main"][0].append({"node": target, "type": "main", "index": 0})
    return {
        "id": workflow_id,
        "name": workflow_id,
        "nodes": nodes,
        "connections": connections,
    }


def echo_handler(node, items, context):
    """Append the node id to each item's trail."""
    return [
        {"json": {**item["json"], "trail": item["json"].get("trail", []) + [node.id]}}
        for item in items
    ]


def failing_handler(node, items, context):
    raise RuntimeError("boom")


def sleeping_handler(node, items, context):
    time.sleep(float(node.parameters.get("seconds", 0.5)))
    return items


class CallRecorder:
    """Records handler calls; fails the first `failures` calls."""

    def __init__(self, failures=0, delay=0.0):
        self.failures = failures
        self.delay = delay
        self.calls = []
        self.running = 0
        self.max_running = 0
        self._lock = threading.Lock()

    def __call__(self, node, items, context):
        with self._lock:
            self.calls.append(node.id)
            self.running += 1
            self.max_running = max(self.max_running, self.running)
            call_number = len(self.calls)
        try:
            if self.delay:
                time.sleep(self.delay)
            if call_number <= self.failures:
                raise RuntimeError(f"boom #{call_number}")
            return items
        finally:
            with self._lock:
                self.running -= 1

    def count(self, node_id):
        return self.calls.count(node_id)


class RecordingListener:
    """Collects lifecycle events as (event, execution_id[, node_id]) tuples."""

    def __init__(self):
        self.events = []
        self._lock = threading.Lock()

    def _record(self, *event):
        with self._lock:
            self.events.append(event)

    def on_execution_started(self, execution_id, workflow_id):
        self._record("started", execution_id)

    def on_execution_completed(self, execution):
        self._record("completed", execution.id)

    def on_execution_failed(self, execution):
        self._record("failed", execution.id)

    def on_node_executed(self, execution, node, result):
        self._record("node", execution.id, node.id)

    def names(self, execution_id=None):
        return [e[0] for e in self.events if execution_id is None or e[1] == execution_id]

    def nodes(self, execution_id):
        return [e[2] for e in self.events if e[0] == "node" and e[1] == execution_id]


def wait_until(predicate, timeout=5.0, interval=0.01):
    """Poll predicate until it returns True or timeout elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return False


@pytest.fixture(autouse=True)
def fresh_settings():
    """Reload settings from the environment for every test."""
    from flow_orchestrator.config import reset_settings

    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def workflow_factory():
    return build_workflow


@pytest.fixture
def dispatcher():
    """Dispatcher with built-in handlers plus test handlers."""
    from flow_orchestrator.dispatcher import NodeDispatcher

    d = NodeDispatcher()
    d.register_builtin_handlers()
    d.register_handler("test.echo", echo_handler)
    d.register_handler("test.fail", failing_handler)
    d.register_handler("test.sleep", sleeping_handler)
    return d


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def queue(dispatcher, listener):
    """Execution queue with two slots."""
    from flow_orchestrator.queue import ExecutionQueue

    q = ExecutionQueue(dispatcher=dispatcher, listeners=[listener], max_concurrent=2)
    yield q
    q.shutdown(wait=True, timeout=5)


@pytest.fixture
def make_execution():
    """Create an Execution for a workflow JSON without running it."""
    from flow_orchestrator.models import Execution, ExecutionOptions, parse_workflow
    from flow_orchestrator.planner import plan_workflow

    def _make(workflow_data, input_data=None, **options):
        workflow = parse_workflow(workflow_data)
        return Execution(
            workflow=workflow,
            input_data=input_data or {},
            options=ExecutionOptions(**options),
            plan=plan_workflow(workflow),
        )

    return _make
