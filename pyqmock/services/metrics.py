"""
Module: pyqmock/services/metrics.py
Purpose: Operational metrics for test generation and attempt submission.

One collector per engine instance; nothing here is process-global, so tests
can build a fresh collector or call reset() between runs.
"""

import time
from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict, List, Optional

from pyqmock.tools.utils import get_logger

logger = get_logger("Metrics")


@dataclass
class OperationRecord:
    """One generate / submit call"""
    operation: str
    exam_type: str
    duration_ms: float
    success: bool
    error: Optional[str] = None
    finished_at: float = 0.0


def _empty_counters() -> Dict:
    return {"total_calls": 0, "total_time_ms": 0.0, "successes": 0, "failures": 0}


class MetricsCollector:
    """Thread-safe counters for the engine's two operations"""

    def __init__(self, max_history: int = 1000):
        self._lock = Lock()
        self._max_history = max_history
        self._history: List[OperationRecord] = []
        self._operations: Dict[str, Dict] = defaultdict(_empty_counters)
        self._by_exam: Dict[str, int] = defaultdict(int)
        self._counters: Dict[str, int] = defaultdict(int)

    def record(self, operation: str, exam_type: str, duration_ms: float,
               success: bool, error: Optional[str] = None) -> None:
        with self._lock:
            stats = self._operations[operation]
            stats["total_calls"] += 1
            stats["total_time_ms"] += duration_ms
            if success:
                stats["successes"] += 1
                self._by_exam[f"{operation}:{exam_type}"] += 1
            else:
                stats["failures"] += 1

            self._history.append(OperationRecord(
                operation=operation,
                exam_type=exam_type,
                duration_ms=duration_ms,
                success=success,
                error=error,
                finished_at=time.time(),
            ))
            if len(self._history) > self._max_history:
                self._history = self._history[-self._max_history:]

        status = "OK" if success else f"FAILED ({error})"
        logger.info(f"[Metrics] {operation} {exam_type} {status} in {duration_ms:.0f}ms")

    def increment(self, counter: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[counter] += amount

    def get_stats(self) -> Dict:
        """Summary per operation plus the most recent failures"""
        with self._lock:
            if not self._history:
                return {"message": "No operations recorded yet"}

            operations = {}
            for name, stats in self._operations.items():
                calls = stats["total_calls"]
                operations[name] = {
                    "calls": calls,
                    "avg_ms": round(stats["total_time_ms"] / calls, 1),
                    "successes": stats["successes"],
                    "success_rate": round(stats["successes"] / calls * 100, 1),
                    "failures": stats["failures"],
                }

            return {
                "operations": operations,
                "by_exam": dict(self._by_exam),
                "counters": dict(self._counters),
                "recent_errors": [
                    {"operation": r.operation, "exam_type": r.exam_type,
                     "error": r.error[:100] if r.error else None}
                    for r in self._history[-10:] if not r.success
                ],
            }

    def reset(self) -> None:
        """Drop everything recorded so far"""
        with self._lock:
            self._history = []
            self._operations = defaultdict(_empty_counters)
            self._by_exam = defaultdict(int)
            self._counters = defaultdict(int)
        logger.info("[Metrics] Reset complete")


class track_operation:
    """
    Context manager that times an engine call and records its outcome.

    Usage:
        with track_operation(metrics, "generate", exam_type):
            ...
    """

    def __init__(self, metrics: MetricsCollector, operation: str, exam_type: str):
        self.metrics = metrics
        self.operation = operation
        self.exam_type = exam_type
        self._start = 0.0

    def __enter__(self) -> 'track_operation':
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration_ms = (time.perf_counter() - self._start) * 1000
        error = f"{exc_type.__name__}: {exc_val}" if exc_type else None
        self.metrics.record(self.operation, self.exam_type, duration_ms, exc_type is None, error)
        return False  # Don't suppress exceptions
