"""
Execution Queue - Admission, concurrency limit and the execution lifecycle.

Submissions are validated and appended to a FIFO queue. A single admission
loop moves the head of the queue into a worker thread whenever a slot is
free; workers run their plan to completion without blocking the loop.
Callers wait on the execution itself, so a timed-out waiter never affects
the run.

Usage:
    with ExecutionQueue(max_concurrent=5) as queue:
        execution = queue.execute_workflow(workflow, {"x": 1})
        print(execution.status, execution.output_items())
"""

from __future__ import annotations

import threading
from collections import deque
from functools import partial
from typing import Any, Deque, Dict, Iterable, List, Optional, Set, Union

from pydantic import ValidationError as PydanticValidationError

from . import validation
from .config import Settings, get_settings
from .dispatcher import NodeDispatcher, get_node_input_data
from .errors import (
    ExecutionNotFoundError,
    ExecutionTimeoutError,
    OrchestratorError,
    RetryExhaustedError,
    ValidationError,
)
from .events import EventBus
from .handlers.base import NodeContext
from .handlers.http import HttpClient
from .models import (
    ErrorPolicy,
    Execution,
    ExecutionOptions,
    ExecutionStats,
    ExecutionStatus,
    NodeResult,
    RetryScope,
    WorkflowDefinition,
    parse_workflow,
    utcnow,
)
from .observability import get_logger, with_trace_context
from .registry import ExecutionRegistry
from .retry import RetryController


logger = get_logger(__name__)

WorkflowLike = Union[WorkflowDefinition, Dict[str, Any]]
OptionsLike = Union[ExecutionOptions, Dict[str, Any], None]

# Seconds between shutdown checks while waiting for a free slot
_SLOT_POLL_INTERVAL = 0.1


def _coerce_workflow(workflow: WorkflowLike) -> WorkflowDefinition:
    if isinstance(workflow, WorkflowDefinition):
        return workflow
    try:
        return parse_workflow(workflow)
    except PydanticValidationError as e:
        messages = [
            f"{'.'.join(str(p) for p in err['loc']) or 'workflow'}: {err['msg']}"
            for err in e.errors()
        ]
        raise ValidationError(messages) from e


def _coerce_options(options: OptionsLike) -> ExecutionOptions:
    if isinstance(options, ExecutionOptions):
        return options
    try:
        return ExecutionOptions.model_validate(options or {})
    except PydanticValidationError as e:
        raise ValidationError([f"options: {err['msg']}" for err in e.errors()]) from e


class ExecutionQueue:
    """
    Bounded-concurrency workflow executor.

    At most `max_concurrent` executions are RUNNING at any instant. Pending
    executions are admitted in submission order; a retried execution goes
    to the back of the queue.
    """

    def __init__(
        self,
        dispatcher: Optional[NodeDispatcher] = None,
        registry: Optional[ExecutionRegistry] = None,
        settings: Optional[Settings] = None,
        listeners: Optional[Iterable[object]] = None,
        max_concurrent: Optional[int] = None,
    ):
        """
        Initialize queue.

        Args:
            dispatcher: Handler registry (defaults to the built-in handlers)
            registry: Execution registry (defaults to a new in-memory one)
            settings: Settings (defaults to get_settings())
            listeners: Lifecycle listeners
            max_concurrent: Concurrency limit (defaults to settings)
        """
        self.settings = settings or get_settings()
        if dispatcher is None:
            dispatcher = NodeDispatcher()
            dispatcher.register_builtin_handlers()
        self.dispatcher = dispatcher
        self.registry = registry or ExecutionRegistry(
            retention=self.settings.retention_s,
            max_history=self.settings.max_history,
        )
        self.events = EventBus(listeners)
        self.max_concurrent = max_concurrent or self.settings.max_concurrent_executions
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")

        self._pending: Deque[Execution] = deque()
        self._lock = threading.Lock()
        self._slots = threading.BoundedSemaphore(self.max_concurrent)
        self._processing = False
        self._stop = threading.Event()
        self._retry = RetryController(self._stop)
        self._http = HttpClient(timeout=self.settings.http_timeout_s)
        self._threads: Set[threading.Thread] = set()

    # ==== Context manager ====

    def __enter__(self) -> "ExecutionQueue":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown(wait=True)

    # ==== Submission ====

    def subscribe(self, listener: object) -> None:
        self.events.subscribe(listener)

    def validate_workflow(self, workflow: WorkflowLike) -> List[str]:
        """
        Validate a workflow without running it.

        Returns:
            The execution plan

        Raises:
            ValidationError: Malformed workflow (CycleDetectedError for cycles)
        """
        return validation.validate_workflow(_coerce_workflow(workflow), self.dispatcher)

    def submit(
        self,
        workflow: WorkflowLike,
        input_data: Optional[Dict[str, Any]] = None,
        options: OptionsLike = None,
    ) -> Execution:
        """
        Validate and enqueue a workflow run.

        Returns immediately with the PENDING execution. A workflow that fails
        validation is never registered and emits no events.

        Raises:
            ValidationError: Malformed workflow or options
            OrchestratorError: The queue is shut down
        """
        if self._stop.is_set():
            raise OrchestratorError("Execution queue is shut down")

        workflow = _coerce_workflow(workflow)
        options = _coerce_options(options)
        plan = validation.validate_workflow(workflow, self.dispatcher)

        execution = Execution(
            workflow=workflow,
            input_data=dict(input_data or {}),
            options=options,
            plan=plan,
        )
        self.registry.add(execution)
        logger.info(
            f"Execution queued: {workflow.name}",
            extra=with_trace_context(execution_id=execution.id, workflow_id=execution.workflow_id),
        )
        self.events.execution_started(execution.id, execution.workflow_id)
        self._enqueue(execution)
        return execution

    def execute_workflow(
        self,
        workflow: WorkflowLike,
        input_data: Optional[Dict[str, Any]] = None,
        options: OptionsLike = None,
    ) -> Execution:
        """
        Submit a workflow and wait for it to finish.

        Raises:
            ValidationError: Malformed workflow
            ExecutionTimeoutError: The run did not finish within options.timeout.
                The run itself keeps going.
        """
        execution = self.submit(workflow, input_data, options)
        if not execution.wait(execution.options.timeout):
            raise ExecutionTimeoutError(execution.id, execution.options.timeout)
        return execution

    def wait_for_execution(self, execution_id: str, timeout: Optional[float] = None) -> Execution:
        """
        Block until the execution is terminal.

        Args:
            execution_id: Execution to wait for
            timeout: Seconds to wait (defaults to the execution's options.timeout)

        Raises:
            ExecutionNotFoundError: Unknown or already evicted id
            ExecutionTimeoutError: Still running when the timeout elapsed
        """
        execution = self.registry.get(execution_id)
        if execution is None:
            raise ExecutionNotFoundError(execution_id)
        if timeout is None:
            timeout = execution.options.timeout
        if not execution.wait(timeout):
            raise ExecutionTimeoutError(execution_id, timeout)
        return execution

    # ==== Introspection ====

    def get_execution(self, execution_id: str) -> Optional[Execution]:
        return self.registry.get(execution_id)

    def get_stats(self) -> ExecutionStats:
        with self._lock:
            queued = len(self._pending)
        return self.registry.get_stats(queued=queued)

    def clear_history(self) -> None:
        self.registry.clear_history()

    # ==== Admission ====

    def _enqueue(self, execution: Execution) -> None:
        with self._lock:
            stopped = self._stop.is_set()
            if not stopped:
                self._pending.append(execution)
                if self._processing:
                    return
                self._processing = True
        if stopped:
            self._abandon(execution)
            return
        self._start_thread(self._process_queue, "execution-admission")

    def _start_thread(self, target, name: str, *args: Any) -> None:
        thread = threading.Thread(target=self._tracked, args=(target, *args), name=name, daemon=True)
        with self._lock:
            self._threads.add(thread)
        thread.start()

    def _tracked(self, target, *args: Any) -> None:
        try:
            target(*args)
        finally:
            with self._lock:
                self._threads.discard(threading.current_thread())

    def _acquire_slot(self) -> bool:
        while not self._stop.is_set():
            if self._slots.acquire(timeout=_SLOT_POLL_INTERVAL):
                return True
        return False

    def _process_queue(self) -> None:
        """
        Admission loop. Only one runs at a time.

        Waits for a free slot before taking the head off the queue, so the
        head keeps its place while capacity is exhausted.
        """
        while True:
            with self._lock:
                if not self._pending or self._stop.is_set():
                    self._processing = False
                    return

            if not self._acquire_slot():
                with self._lock:
                    self._processing = False
                return

            with self._lock:
                if not self._pending:
                    self._slots.release()
                    continue
                execution = self._pending.popleft()
                execution.status = ExecutionStatus.RUNNING
                if execution.started_at is None:
                    execution.started_at = utcnow()

            self._start_thread(self._run_worker, f"execution-{execution.id}", execution)

    # ==== Execution ====

    def _run_worker(self, execution: Execution) -> None:
        try:
            self._run_execution(execution)
        except Exception as e:
            logger.exception(
                f"Execution {execution.id} crashed",
                extra=with_trace_context(execution_id=execution.id, workflow_id=execution.workflow_id),
            )
            execution.status = ExecutionStatus.ERROR
            execution.error = str(e) or type(e).__name__
            execution.error_type = type(e).__name__
            execution.exception = e
        finally:
            self._slots.release()

        if execution.is_success:
            self._finish(execution)
            return

        if self._retry.can_retry_execution(execution):
            self._retry.prepare_retry(execution)
            if self._retry.wait(execution.options.retry_delay):
                self._enqueue(execution)
                return
            execution.status = ExecutionStatus.ERROR
        elif execution.retry_count > 0:
            execution.exception = RetryExhaustedError(execution.id, execution.attempts, execution.error)
            execution.error_type = type(execution.exception).__name__
        self._finish(execution)

    def _run_execution(self, execution: Execution) -> None:
        """Run every node of the plan in order, for one attempt."""
        workflow = execution.workflow
        connections = list(workflow.iter_connections())
        context = NodeContext(execution=execution, http_client=self._http)
        execution.error = None
        execution.error_type = None
        execution.error_node = None
        execution.exception = None

        logger.info(
            f"Running {workflow.name} (attempt {execution.attempts}/{execution.options.max_tries})",
            extra=with_trace_context(execution_id=execution.id, workflow_id=execution.workflow_id),
        )

        for node_id in execution.plan:
            node = workflow.get_node(node_id)
            if node is None:
                continue
            execution.current_node = node_id
            items = get_node_input_data(execution, node, connections)

            if node.disabled:
                result = NodeResult(
                    node_id=node.id,
                    node_name=node.name,
                    success=True,
                    items=items,
                    skipped=True,
                )
            else:
                result = self._retry.run_node(
                    node, execution, partial(self.dispatcher.dispatch, node, items, context)
                )
                if (
                    result.attempts > 1
                    and not node.retry_on_fail
                    and execution.options.retry_scope == RetryScope.NODE
                ):
                    execution.retry_count += result.attempts - 1

            execution.results[node_id] = result
            self.events.node_executed(execution, node, result)

            if not result.success and self._retry.effective_policy(node, execution) == ErrorPolicy.STOP:
                execution.status = ExecutionStatus.ERROR
                execution.error = f"Node {node.name} failed: {result.error}"
                execution.error_type = result.error_type
                execution.exception = result.exception
                execution.error_node = node.id
                execution.current_node = None
                logger.warning(
                    execution.error,
                    extra=with_trace_context(
                        execution_id=execution.id,
                        workflow_id=execution.workflow_id,
                        node_id=node.id,
                        node_type=node.type,
                    ),
                )
                return

        execution.current_node = None
        execution.status = ExecutionStatus.SUCCESS

    def _finish(self, execution: Execution) -> None:
        """Record the terminal state, notify listeners and release waiters."""
        execution.finished_at = utcnow()
        started = execution.started_at or execution.created_at
        execution.duration_ms = (execution.finished_at - started).total_seconds() * 1000

        self.registry.record_terminal(execution)
        if execution.is_success:
            self.events.execution_completed(execution)
        else:
            self.events.execution_failed(execution)
        execution.mark_done()

    # ==== Shutdown ====

    def _abandon(self, execution: Execution) -> None:
        execution.status = ExecutionStatus.ERROR
        execution.error = "Execution queue shut down"
        execution.error_type = OrchestratorError.__name__
        self._finish(execution)

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """
        Stop admitting work.

        Queued executions fail with a shutdown error. Running executions
        finish their current attempt but are not retried.
        """
        if self._stop.is_set():
            return
        self._stop.set()

        with self._lock:
            abandoned = list(self._pending)
            self._pending.clear()
        for execution in abandoned:
            self._abandon(execution)

        if wait:
            with self._lock:
                threads = list(self._threads)
            for thread in threads:
                if thread is not threading.current_thread():
                    thread.join(timeout)

        logger.info(f"Execution queue shut down ({len(abandoned)} queued executions abandoned)")


__all__ = ["ExecutionQueue"]
