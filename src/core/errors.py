"""Delivery error taxonomy."""

from __future__ import annotations

from src.ports.stats import AttemptStats

__all__ = [
    "DispatchError",
    "HardClientError",
    "InvalidEndpointError",
    "InvalidPayloadError",
    "InvalidTimeoutError",
    "RetryExhaustedError",
    "ServerError",
    "SoftResponseError",
    "TransportError",
]


class DispatchError(Exception):
    """Base class for delivery errors.

    Attributes:
        stats: Attempt record the error relates to, when one exists.
    """

    def __init__(self, message: str, *, stats: AttemptStats | None = None) -> None:
        super().__init__(message)
        self.stats = stats

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""


class InvalidEndpointError(DispatchError):
    """Endpoint input missing, empty or unresolvable."""


class InvalidTimeoutError(DispatchError):
    """Timeout configuration is not numeric."""


class InvalidPayloadError(DispatchError):
    """Input data cannot be serialized to JSON."""


class TransportError(DispatchError):
    """Connection-level failure or timeout abort (retryable)."""


class ServerError(DispatchError):
    """Response status above 400 (retryable)."""

    def __init__(self, status_code: int, *, stats: AttemptStats | None = None) -> None:
        super().__init__(f"Status Code: {status_code}", stats=stats)
        self.status_code = status_code


class HardClientError(DispatchError):
    """Response status exactly 400 (never retried)."""

    def __init__(self, *, stats: AttemptStats | None = None) -> None:
        super().__init__("400 Status", stats=stats)
        self.status_code = 400


class SoftResponseError(DispatchError):
    """Response status in the 3xx band.

    Informational only: attached to a resolved result, never raised by the
    dispatcher.
    """

    def __init__(
        self,
        status_code: int,
        response_text: str,
        request_body: bytes,
        *,
        stats: AttemptStats | None = None,
    ) -> None:
        data = request_body.decode("utf-8", errors="replace")
        super().__init__(
            f'{{"Response": {response_text}, "statusCode": {status_code}, "data": {data}}}',
            stats=stats,
        )
        self.status_code = status_code


class RetryExhaustedError(DispatchError):
    """Attempt budget spent; wraps the last underlying error."""

    def __init__(
        self, attempts: int, last_error: BaseException, *, stats: AttemptStats | None = None
    ) -> None:
        super().__init__(
            f"tryAgain has exceeded max delivery attempts ({attempts}):{last_error}",
            stats=stats,
        )
        self.attempts = attempts
        self.last_error = last_error
        self.__cause__ = last_error
