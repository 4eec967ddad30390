"""Endpoint port definition (DTOs)."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

__all__ = ["DEFAULT_MAX_RETRY", "HTTP_METHODS", "DispatchOptions", "Endpoint"]

DEFAULT_MAX_RETRY = 3
HTTP_METHODS = frozenset(
    {"GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "TRACE", "CONNECT"}
)


@dataclass(slots=True, frozen=True)
class Endpoint:
    """Resolved delivery destination.

    Immutable for the whole duration of one dispatch call.

    Attributes:
        host: Target host name or address.
        port: Target TCP port.
        path: Request path (always starts with "/").
        method: Default HTTP verb for this endpoint.
        scheme: "http" or "https".
        headers: Default request headers.
        max_retry: Attempt budget for one dispatch (>= 1).
        timeout: Per-attempt timeout in milliseconds, kept as supplied.
        compress: Whether payloads are gzip-compressed.
        query: Query-string parameters.
        transport: Optional transport handle overriding the dispatcher's.
        ssl: Optional TLS context or flag passed to the transport.
    """

    host: str
    port: int
    path: str = "/"
    method: str = "POST"
    scheme: str = "http"
    headers: Mapping[str, str] = field(default_factory=dict)
    max_retry: int = DEFAULT_MAX_RETRY
    timeout: float | str | None = None
    compress: bool = False
    query: Mapping[str, str] = field(default_factory=dict)
    transport: Any = field(default=None, compare=False, repr=False)
    ssl: Any = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if self.method.upper() not in HTTP_METHODS:
            raise ValueError(f"Unsupported HTTP method: {self.method}")
        if isinstance(self.max_retry, bool) or not isinstance(self.max_retry, int):
            raise ValueError(f"max_retry must be an integer (got: {self.max_retry!r})")
        if self.max_retry < 1:
            raise ValueError(f"max_retry must be >= 1 (got: {self.max_retry})")

    @property
    def href(self) -> str:
        """Full URL without query string, used as the endpoint identity."""
        default_port = 443 if self.scheme == "https" else 80
        netloc = self.host if self.port == default_port else f"{self.host}:{self.port}"
        return f"{self.scheme}://{netloc}{self.path}"


@dataclass(slots=True, frozen=True)
class DispatchOptions:
    """Per-call overrides.

    Attributes:
        method: HTTP verb replacing the endpoint's method.
        headers: Header mapping replacing the endpoint defaults entirely.
    """

    method: str | None = None
    headers: Mapping[str, str] | None = None
