"""Attempt statistics record (DTO)."""

from __future__ import annotations

import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from src.ports.endpoint import Endpoint

__all__ = ["TRANSPORT_FAILURE_CODE", "AttemptStats", "start_attempt"]

# Status recorded when no HTTP response was received
TRANSPORT_FAILURE_CODE = 599


@dataclass(slots=True)
class AttemptStats:
    """Telemetry for a single delivery attempt.

    A fresh record is allocated for every attempt. It is mutable while the
    attempt runs and frozen once the attempt reaches a terminal outcome.

    Attributes:
        attempt: 1-based attempt number.
        started_at: Epoch seconds when the attempt started.
        ended_at: Epoch seconds when the attempt finished; None while running.
        method: HTTP verb sent.
        path: Request path.
        href: Endpoint URL, for log context.
        request_headers: Headers sent with the request.
        compressed: True if the request body was gzip-compressed.
        status_code: Response status, or 599 on transport failure.
        response_headers: Response headers.
        response_body: Drained response body.
        error: Error attached to this attempt, if any.
        simulated: True if produced by the simulate bypass.
    """

    attempt: int
    started_at: float
    method: str
    path: str
    href: str = ""
    request_headers: Mapping[str, str] = field(default_factory=dict)
    compressed: bool = False
    ended_at: float | None = None
    status_code: int | None = None
    response_headers: Mapping[str, str] = field(default_factory=dict)
    response_body: bytes = b""
    error: BaseException | None = None
    simulated: bool = False
    _frozen: bool = field(default=False, init=False, repr=False, compare=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_frozen", False):
            raise AttributeError(f"AttemptStats is frozen; cannot set {name!r}")
        object.__setattr__(self, name, value)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> "AttemptStats":
        """Mark the record as terminal; further assignment raises."""
        object.__setattr__(self, "_frozen", True)
        return self

    @property
    def response_text(self) -> str:
        return self.response_body.decode("utf-8", errors="replace")

    @property
    def duration_ms(self) -> float | None:
        if self.ended_at is None:
            return None
        return (self.ended_at - self.started_at) * 1_000.0

    @property
    def is_failed(self) -> bool:
        """True for transport failures and any status >= 300."""
        return self.status_code is None or self.status_code > 299


def start_attempt(
    endpoint: Endpoint,
    method: str,
    headers: Mapping[str, str],
    compress: bool,
    attempt: int,
) -> AttemptStats:
    """Allocate the record for a new attempt, stamped with the current time.

    Args:
        endpoint: Resolved destination.
        method: HTTP verb used for this call.
        headers: Final request headers.
        compress: Whether the body was compressed.
        attempt: 1-based attempt number.

    Returns:
        Fresh, unfrozen AttemptStats.
    """
    return AttemptStats(
        attempt=attempt,
        started_at=time.time(),
        method=method,
        path=endpoint.path,
        href=endpoint.href,
        request_headers=headers,
        compressed=compress,
    )
