import time
from collections import Counter, deque
from typing import Callable, Optional

from logger_config import setup_logger

logger = setup_logger(__name__)


class StoreHealthMonitor:
    def __init__(self, failure_threshold: int, window_seconds: float = 60,
                 alert_handler: Optional[Callable[[str], None]] = None, name: str = "store"):
        """
        Track failures of the backing medium behind an audio store.

        Read and delete failures are reported to clients as "absent" or
        "deleted", so this is the only place they become visible to operators.

        Args:
            failure_threshold: Failures within the window that trigger one alert
            window_seconds: Length of the sliding window
            alert_handler: Callback receiving the alert text. If None, logs an error
            name: Backend name used in alerts (memory, disk, s3)
        """
        if failure_threshold <= 0:
            raise ValueError("Failure threshold must be positive")

        self.name = name
        self._failure_threshold = failure_threshold
        self._window_seconds = window_seconds
        self._alert_handler = alert_handler or self._log_alert
        self._total_passes = 0
        self._total_failures = 0
        self._failures_by_operation = Counter()
        # (monotonic time, operation) per failure inside the window
        self._recent = deque()
        self._last_status_time = time.time()

    def _expire(self) -> None:
        cutoff = time.monotonic() - self._window_seconds
        while self._recent and self._recent[0][0] < cutoff:
            self._recent.popleft()

    def _log_alert(self, message: str) -> None:
        logger.error(f"[ALERT] {message}")

    def pass_(self) -> None:
        """Record a successful backend call."""
        self._total_passes += 1
        self._last_status_time = time.time()

    def fail(self, operation: str = "") -> None:
        """
        Record a failed backend call.

        Alerts once when the failures inside the window reach the threshold;
        the window has to drop below it again before the next alert.
        """
        operation = operation or "unknown"
        self._recent.append((time.monotonic(), operation))
        self._total_failures += 1
        self._failures_by_operation[operation] += 1
        self._last_status_time = time.time()
        self._expire()

        if len(self._recent) == self._failure_threshold:
            in_window = Counter(op for _, op in self._recent)
            breakdown = ", ".join(f"{op}={count}" for op, count in sorted(in_window.items()))
            self._alert_handler(
                f"{self.name}: {self._failure_threshold} store failures within {self._window_seconds:g}s "
                f"(last: {operation}; {breakdown})"
            )

    @property
    def recent_failures(self) -> int:
        """Number of failures within the window."""
        self._expire()
        return len(self._recent)

    @property
    def stats(self) -> dict:
        self._expire()
        return {
            'backend': self.name,
            'total_passes': self._total_passes,
            'total_failures': self._total_failures,
            'recent_failures': len(self._recent),
            'failures_by_operation': dict(self._failures_by_operation),
            'last_status_time': int(self._last_status_time),
            'window_seconds': self._window_seconds,
        }
