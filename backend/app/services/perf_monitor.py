"""Operation timing and counters for the quote costing services."""
import time
import logging
import threading
import functools
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger("quotecost-api.perf")


def timed_async(func: Callable) -> Callable:
    """
    Decorator that measures async service calls, logs the duration and
    records it (and any failure) on the module tracker under the function's
    qualified name.

    Usage::

        @timed_async
        async def explode_product(...):
            ...
    """
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        start = time.perf_counter()
        failed = False
        try:
            return await func(*args, **kwargs)
        except Exception:
            failed = True
            raise
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            tracker.record_operation(func.__qualname__, duration_ms, failed=failed)
            logger.debug(
                "operation timed",
                extra={
                    "operation": func.__qualname__,
                    "duration_ms": duration_ms,
                },
            )
    return wrapper


class OperationTracker:
    """
    Thread-safe in-memory tracker for costing operations.

    Tracks, per operation name:
    - call count and average duration
    - failure count
    plus the slowest single call seen.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._durations: Dict[str, List[float]] = {}
        self._failures: Dict[str, int] = {}
        self._slowest_operation: Optional[str] = None
        self._slowest_operation_ms: float = 0.0

    def record_operation(self, name: str, duration_ms: float, failed: bool = False) -> None:
        with self._lock:
            self._durations.setdefault(name, []).append(duration_ms)
            if failed:
                self._failures[name] = self._failures.get(name, 0) + 1
            if duration_ms > self._slowest_operation_ms:
                self._slowest_operation_ms = duration_ms
                self._slowest_operation = name

    def get_metrics(self) -> Dict[str, Any]:
        """
        Snapshot of collected metrics.

        Returns
        -------
        dict with keys:
            operations_total        : int
            failure_count           : int
            slowest_operation       : str | None
            slowest_operation_ms    : float
            calls_by_operation      : dict  {name: count}
            avg_duration_ms         : dict  {name: avg_ms}
            failures_by_operation   : dict  {name: count}
        """
        with self._lock:
            return {
                "operations_total": sum(len(d) for d in self._durations.values()),
                "failure_count": sum(self._failures.values()),
                "slowest_operation": self._slowest_operation,
                "slowest_operation_ms": round(self._slowest_operation_ms, 2),
                "calls_by_operation": {name: len(d) for name, d in self._durations.items()},
                "avg_duration_ms": {
                    name: round(sum(d) / len(d), 2) if d else 0.0
                    for name, d in self._durations.items()
                },
                "failures_by_operation": dict(self._failures),
            }

    def reset(self) -> None:
        """Reset all counters (useful in tests)."""
        with self._lock:
            self._durations.clear()
            self._failures.clear()
            self._slowest_operation = None
            self._slowest_operation_ms = 0.0


# Module-level singleton; import this instance everywhere else.
tracker = OperationTracker()
