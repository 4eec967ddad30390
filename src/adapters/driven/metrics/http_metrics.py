"""In-memory sliding-window metrics for delivery attempts."""

from __future__ import annotations

import statistics
from collections import deque
from dataclasses import dataclass

from src.ports.metrics import MetricsPort
from src.ports.stats import AttemptStats

__all__ = ["Metrics"]


@dataclass(slots=True, frozen=True)
class _Sample:
    """Internal record for one delivery attempt."""

    duration_ms: float
    failed: bool
    status_code: int
    retried: bool


class Metrics(MetricsPort):
    """Fast, lock-free metrics for async context.

    Tracks:
    - Average attempt duration.
    - Failure rate (transport errors or status >= 300).
    - Retry share (attempts numbered 2 and above).
    - Last status code.
    - Total attempts seen.

    Not thread-safe; create one instance per event loop.
    """

    def __init__(self, *, window_size: int = 100) -> None:
        """Initialize metrics collector.

        Args:
            window_size: Number of recent attempts to keep for statistics.
        """
        self._window: deque[_Sample] = deque(maxlen=window_size)
        self._total_seen: int = 0

    def update(self, stats: AttemptStats) -> None:
        """Record a finished attempt.

        Args:
            stats: Attempt record with timing and status.
        """
        self._window.append(
            _Sample(
                duration_ms=stats.duration_ms or 0.0,
                failed=stats.is_failed,
                status_code=stats.status_code or 0,
                retried=stats.attempt > 1,
            )
        )
        self._total_seen += 1

    def __str__(self) -> str:
        """Return human-readable one-line summary for logging.

        Returns:
            Formatted metrics string.
        """
        if not self._window:
            return "Metrics: waiting for data …"

        n_window = len(self._window)
        failures = sum(1 for s in self._window if s.failed)
        retries = sum(1 for s in self._window if s.retried)
        fail_pct = (failures / n_window) * 100
        retry_pct = (retries / n_window) * 100
        avg_duration = statistics.fmean(s.duration_ms for s in self._window)
        last = self._window[-1]

        return (
            f"duration={avg_duration:6.1f} ms | "
            f"status={last.status_code:3d} | "
            f"fail={fail_pct:5.1f}% | "
            f"retry={retry_pct:5.1f}% | "
            f"win={n_window}/{self._window.maxlen} | "
            f"total={self._total_seen}"
        )
