"""Metrics port definition (interface)."""

from __future__ import annotations

from typing import Protocol

from src.ports.stats import AttemptStats

__all__ = ["MetricsPort"]


class MetricsPort(Protocol):
    """Interface for recording delivery attempt metrics.

    Implementations must be async-safe and non-blocking.
    The dispatcher calls update() after every finished attempt, retries
    included; presentation layers call __str__() to render summaries.
    """

    def update(self, stats: AttemptStats, /) -> None:
        """Record a finished attempt.

        Args:
            stats: The attempt to record.
        """
        ...

    def __str__(self) -> str:
        """Return concise textual summary for humans.

        Returns:
            Formatted metrics string.
        """
        ...
