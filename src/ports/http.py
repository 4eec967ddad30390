"""HTTP port definition (interface and DTOs)."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

__all__ = ["EncodedPayload", "HttpRequestDto", "HttpResponseDto", "TransportPort"]


@dataclass(slots=True, frozen=True)
class EncodedPayload:
    """Bytes ready for transmission.

    Derived once per dispatch and re-sent verbatim on every retry.

    Attributes:
        body: Encoded (and possibly compressed) bytes.
        compressed: True if body is gzip-compressed.
        content_type: Media type of the uncompressed content.
    """

    body: bytes
    compressed: bool = False
    content_type: str = "application/json"


@dataclass(slots=True, frozen=True)
class HttpRequestDto:
    """One outgoing HTTP request, as handed to a transport.

    Attributes:
        method: HTTP verb.
        url: Absolute URL without query string.
        headers: Final request headers.
        body: Request body, or None when the method carries no body.
        query: Query-string parameters.
        ssl: TLS context or flag, transport specific.
    """

    method: str
    url: str
    headers: Mapping[str, str]
    body: bytes | None = None
    query: Mapping[str, str] = field(default_factory=dict)
    ssl: Any = None


@dataclass(slots=True, frozen=True)
class HttpResponseDto:
    """Fully drained HTTP response.

    Attributes:
        status: HTTP status code.
        headers: Response headers.
        body: Complete response body.
    """

    status: int
    headers: Mapping[str, str]
    body: bytes = b""


class TransportPort(Protocol):
    """Interface for sending one HTTP request.

    Implementations must drain the whole response body before returning and
    raise TransportError on any connection-level failure.
    """

    async def send(self, request: HttpRequestDto, /) -> HttpResponseDto:
        """Send a request and return the drained response.

        Args:
            request: The request to send.

        Returns:
            Drained response.
        """
        ...
