"""
Retry Controller - Run-level and node-level retry decisions.

Whole-run retry (the default scope) replays every node from the start of the
plan, including nodes that already succeeded. Handlers with side effects
(HTTP calls, emails, writes) will repeat them. Use RetryScope.NODE to spend
the retry budget on the failing node instead.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from .models import ErrorPolicy, Execution, ExecutionStatus, NodeResult, RetryScope, WorkflowNode


logger = logging.getLogger(__name__)


class RetryController:
    """
    Decides whether a failed node or run gets another attempt.

    `max_tries` counts total attempts: with max_tries=2 a run is tried once
    and retried once.
    """

    def __init__(self, stop_event: Optional[threading.Event] = None):
        """
        Args:
            stop_event: When set, pending retry delays end early and no
                further attempts are made
        """
        self._stop = stop_event or threading.Event()

    # ==== Failure policy ====

    @staticmethod
    def effective_policy(node: WorkflowNode, execution: Execution) -> ErrorPolicy:
        """
        The node's own error policy when set, otherwise the run's
        continue_on_fail option.
        """
        if node.error_policy is not None:
            return node.error_policy
        if execution.options.continue_on_fail:
            return ErrorPolicy.CONTINUE
        return ErrorPolicy.STOP

    # ==== Run level ====

    @staticmethod
    def can_retry_execution(execution: Execution) -> bool:
        options = execution.options
        return (
            options.retry_on_failure
            and options.retry_scope == RetryScope.EXECUTION
            and execution.retry_count < options.max_tries - 1
        )

    def prepare_retry(self, execution: Execution) -> None:
        """Apply the error -> pending transition and reset per-run state."""
        if not self.can_retry_execution(execution):
            raise RuntimeError(f"Execution {execution.id} has no retries left")
        execution.retry_count += 1
        execution.status = ExecutionStatus.PENDING
        execution.results = {}
        execution.current_node = None
        logger.info(
            f"Retrying execution {execution.id} "
            f"(attempt {execution.attempts}/{execution.options.max_tries})"
        )

    def wait(self, delay: float) -> bool:
        """Sleep for delay seconds. Returns False if stopped meanwhile."""
        if delay > 0:
            self._stop.wait(delay)
        return not self._stop.is_set()

    # ==== Node level ====

    def node_attempts(self, node: WorkflowNode, execution: Execution) -> tuple[int, float]:
        """
        (max attempts, delay in seconds) for one node.

        Node retry flags take precedence. Otherwise RetryScope.NODE gives the
        node whatever is left of the run's retry budget, so retries across all
        nodes of a run never exceed max_tries - 1.
        """
        if node.retry_on_fail:
            return node.max_tries, node.wait_between_tries / 1000
        options = execution.options
        if options.retry_on_failure and options.retry_scope == RetryScope.NODE:
            remaining = max(options.max_tries - 1 - execution.retry_count, 0)
            return remaining + 1, options.retry_delay
        return 1, 0.0

    def run_node(
        self,
        node: WorkflowNode,
        execution: Execution,
        attempt: Callable[[], NodeResult],
    ) -> NodeResult:
        """Call attempt() until it succeeds or the node's attempts run out."""
        max_attempts, delay = self.node_attempts(node, execution)
        result = attempt()
        tries = 1
        while not result.success and tries < max_attempts:
            logger.info(f"Retrying node {node.name} (attempt {tries + 1}/{max_attempts})")
            if not self.wait(delay):
                break
            result = attempt()
            tries += 1
        result.attempts = tries
        return result


__all__ = ["RetryController"]
