"""Tagged dispatch outcomes (DTOs)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeAlias

from src.ports.stats import AttemptStats

__all__ = [
    "DispatchResult",
    "HardFailure",
    "RetryExhausted",
    "SoftFailure",
    "Success",
    "ValidationFailure",
]


@dataclass(slots=True, frozen=True)
class Success:
    """2xx (or lower) response on some attempt."""

    stats: AttemptStats

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> AttemptStats:
        return self.stats


@dataclass(slots=True, frozen=True)
class SoftFailure:
    """3xx response: resolved, but with an informational error attached."""

    stats: AttemptStats
    error: Exception

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> AttemptStats:
        return self.stats


@dataclass(slots=True, frozen=True)
class HardFailure:
    """Status 400: terminal after one attempt, never retried."""

    stats: AttemptStats
    error: Exception

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self) -> AttemptStats:
        raise self.error


@dataclass(slots=True, frozen=True)
class RetryExhausted:
    """Every attempt in the budget ended in a retryable failure."""

    stats: AttemptStats
    error: Exception

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self) -> AttemptStats:
        raise self.error


@dataclass(slots=True, frozen=True)
class ValidationFailure:
    """Input rejected before any network activity."""

    error: Exception

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self) -> AttemptStats:
        raise self.error


DispatchResult: TypeAlias = Success | SoftFailure | HardFailure | RetryExhausted | ValidationFailure
