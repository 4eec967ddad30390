"""Settings port definition (DTO)."""

from dataclasses import dataclass

from src.ports.endpoint import DEFAULT_MAX_RETRY

__all__ = ["DEFAULT_RETRY_DELAY_MS", "SettingsPort"]

DEFAULT_RETRY_DELAY_MS = 500.0


@dataclass(slots=True, frozen=True)
class SettingsPort:
    """Process-wide delivery settings for the dispatcher.

    Passed explicitly to each Dispatcher so that several dispatchers with
    different settings can live in one process.

    Attributes:
        simulate: Skip network I/O and return synthetic results.
        max_retry_attempts: Attempt budget for endpoints that set none.
        retry_delay_ms: Fixed delay between attempts.
        request_timeout_ms: Per-attempt timeout for endpoints that set none.
    """

    simulate: bool = False
    max_retry_attempts: int = DEFAULT_MAX_RETRY
    retry_delay_ms: float = DEFAULT_RETRY_DELAY_MS
    request_timeout_ms: float | None = None
