"""
Performance monitoring and error tracking.

PerformanceMonitor keeps its timers on the instance; two monitors never
share a timer map. measure() records the outcome of an async operation and
always re-raises its errors.

ErrorTracker reports application errors through the logger. Both are gated
by feature flags (ENABLE_PERFORMANCE_MONITORING, ENABLE_ERROR_TRACKING).
"""

import time
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from cvbuilder.core.logging import get_logger

T = TypeVar("T")


class PerformanceMonitor:
    def __init__(self, component: str, enabled: bool = False):
        self.logger = get_logger(f"PerfMon:{component}")
        self.enabled = enabled
        self._timers: Dict[str, float] = {}

    def start_timer(self, operation_id: str) -> None:
        if not self.enabled:
            return
        self._timers[operation_id] = time.perf_counter()

    def end_timer(self, operation_id: str, metadata: Optional[Dict[str, Any]] = None) -> int:
        """Stop a timer and return its duration in milliseconds (0 if disabled or unknown)."""
        if not self.enabled:
            return 0

        started = self._timers.pop(operation_id, None)
        if started is None:
            self.logger.warning(f"No timer found for operation: {operation_id}")
            return 0

        duration_ms = int((time.perf_counter() - started) * 1000)
        meta = {"duration_ms": duration_ms}
        if metadata:
            meta.update(metadata)
        self.logger.info(f"Operation completed: {operation_id}", extra={"meta": meta})
        return duration_ms

    def active_timers(self) -> int:
        return len(self._timers)

    async def measure(
        self,
        operation_name: str,
        operation: Callable[[], Awaitable[T]],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> T:
        operation_id = f"{operation_name}_{time.time_ns()}"
        self.start_timer(operation_id)

        try:
            result = await operation()
        except Exception as exc:
            self.end_timer(operation_id, {**(metadata or {}), "status": "error", "error": repr(exc)})
            raise
        self.end_timer(operation_id, {**(metadata or {}), "status": "success"})
        return result


class ErrorTracker:
    def __init__(self, enabled: bool = False):
        self.logger = get_logger("ErrorTracker")
        self.enabled = enabled

    def capture(
        self,
        error: BaseException,
        *,
        user_id: Optional[str] = None,
        request_path: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        if not self.enabled:
            return
        self.logger.error(
            "Application error",
            exc_info=(type(error), error, error.__traceback__),
            extra={"meta": {"user_id": user_id, "path": request_path, "metadata": metadata}},
        )

    def capture_message(self, message: str, level: str = "info", metadata: Optional[Dict[str, Any]] = None) -> None:
        if not self.enabled:
            return
        log_fn = {
            "info": self.logger.info,
            "warning": self.logger.warning,
            "error": self.logger.error,
        }.get(level, self.logger.info)
        log_fn(message, extra={"meta": metadata} if metadata else None)
