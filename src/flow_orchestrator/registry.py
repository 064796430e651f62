"""In-memory registry of active and historical executions."""
import threading
import time
from collections import OrderedDict
from typing import Callable, Dict, List, Optional

from .config import get_settings
from .errors import ExecutionNotFoundError
from .models import Execution, ExecutionStats, ExecutionStatus, ExecutionSummary
from .observability import get_logger

logger = get_logger(__name__)


class ExecutionRegistry:
    """
    Active executions plus a bounded history of terminal summaries.

    A terminal execution stays readable in the active table for `retention`
    seconds, then is evicted; its summary remains in history until pushed
    out by newer entries. Expiry is checked lazily on every access.
    """

    def __init__(
        self,
        retention: Optional[float] = None,
        max_history: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize registry.

        Args:
            retention: Seconds a terminal execution stays in the active table
            max_history: Maximum number of summaries kept
            clock: Monotonic time source (injectable for tests)
        """
        settings = get_settings()
        self.retention = settings.retention_s if retention is None else retention
        self.max_history = settings.max_history if max_history is None else max_history
        self._clock = clock

        self._active: Dict[str, Execution] = {}
        self._expires_at: Dict[str, float] = {}
        self._history: "OrderedDict[str, ExecutionSummary]" = OrderedDict()
        self._lock = threading.RLock()

    def add(self, execution: Execution) -> None:
        """Register a newly submitted execution."""
        with self._lock:
            self._purge_locked()
            self._active[execution.id] = execution

    def get(self, execution_id: str) -> Optional[Execution]:
        """Get an active (or recently finished) execution."""
        with self._lock:
            self._purge_locked()
            return self._active.get(execution_id)

    def require(self, execution_id: str) -> Execution:
        execution = self.get(execution_id)
        if execution is None:
            raise ExecutionNotFoundError(execution_id)
        return execution

    def get_summary(self, execution_id: str) -> Optional[ExecutionSummary]:
        with self._lock:
            return self._history.get(execution_id)

    def active(self) -> List[Execution]:
        with self._lock:
            self._purge_locked()
            return list(self._active.values())

    def running_count(self) -> int:
        with self._lock:
            return sum(1 for e in self._active.values() if e.status == ExecutionStatus.RUNNING)

    def history(self) -> List[ExecutionSummary]:
        with self._lock:
            return list(self._history.values())

    def record_terminal(self, execution: Execution) -> ExecutionSummary:
        """
        Append the execution's summary to history and schedule eviction of
        its active entry.
        """
        summary = ExecutionSummary.from_execution(execution)
        with self._lock:
            self._history[execution.id] = summary
            self._history.move_to_end(execution.id)
            while len(self._history) > self.max_history:
                self._history.popitem(last=False)
            self._expires_at[execution.id] = self._clock() + self.retention
            self._purge_locked()

        logger.debug(
            "Execution recorded",
            extra={"execution_id": execution.id, "workflow_id": execution.workflow_id},
        )
        return summary

    def purge_expired(self) -> int:
        """Evict terminal executions whose retention elapsed. Returns count."""
        with self._lock:
            return self._purge_locked()

    def _purge_locked(self) -> int:
        now = self._clock()
        expired = [eid for eid, deadline in self._expires_at.items() if deadline <= now]
        for execution_id in expired:
            self._expires_at.pop(execution_id, None)
            self._active.pop(execution_id, None)
        return len(expired)

    def get_stats(self, queued: int = 0) -> ExecutionStats:
        """
        Aggregate counts from history.

        The average duration covers successful executions only.
        """
        with self._lock:
            self._purge_locked()
            succeeded = 0
            failed = 0
            total_time = 0.0
            for summary in self._history.values():
                if summary.status == ExecutionStatus.SUCCESS:
                    succeeded += 1
                    total_time += summary.duration_ms or 0
                elif summary.status == ExecutionStatus.ERROR:
                    failed += 1

            return ExecutionStats(
                active=len(self._active),
                queued=queued,
                total=len(self._history),
                succeeded=succeeded,
                failed=failed,
                avg_duration_ms=total_time / succeeded if succeeded else 0.0,
            )

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()
        logger.info("Execution history cleared")
