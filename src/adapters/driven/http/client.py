"""aiohttp transport adapter."""

import logging
from types import TracebackType

import aiohttp
from aiohttp import ClientTimeout

from src.adapters.driven.http.errors import RETRYABLE_ERRORS, as_transport_error
from src.adapters.driven.http.reader import read_stream
from src.ports.http import HttpRequestDto, HttpResponseDto

__all__ = ["HttpClient"]

logger = logging.getLogger(__name__)


class HttpClient:
    """Transport that sends one request per call over a shared session.

    Features:
    - One aiohttp session per client, reused across calls and attempts
      (HTTP keep-alive).
    - Full response drain before returning.
    - Connection-level failures surface as TransportError.
    - Context manager for proper resource cleanup.
    """

    def __init__(self, timeout: ClientTimeout | None = None) -> None:
        """Initialize HTTP client.

        Args:
            timeout: Session-level aiohttp timeout. Per-attempt timeouts are
                enforced by the dispatcher, so this is only a safety net.
        """
        self.timeout = timeout
        self.session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> "HttpClient":
        """Enter async context manager (start session).

        Returns:
            Self for use in async with statement.
        """
        if self.timeout is None:
            self.session = aiohttp.ClientSession()
        else:
            self.session = aiohttp.ClientSession(timeout=self.timeout)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Exit async context manager (close session).

        Args:
            exc_type: Exception type if raised in context.
            exc: Exception instance if raised in context.
            tb: Traceback if raised in context.
        """
        if self.session:
            await self.session.close()
            self.session = None

    async def send(self, request: HttpRequestDto) -> HttpResponseDto:
        """Send one HTTP request and drain its response.

        Args:
            request: Request to send.

        Returns:
            Status, headers and complete body.

        Raises:
            RuntimeError: If session not initialized.
            TransportError: On connection, timeout or body-stream failures.
        """
        if self.session is None:
            raise RuntimeError("Session not initialized; use 'async with' context manager")

        try:
            async with self.session.request(
                request.method,
                request.url,
                params=dict(request.query) or None,
                headers=dict(request.headers),
                data=request.body,
                ssl=True if request.ssl is None else request.ssl,
            ) as resp:
                body = await read_stream(resp.content)
                return HttpResponseDto(status=resp.status, headers=dict(resp.headers), body=body)
        except RETRYABLE_ERRORS as e:
            logger.debug(f"{request.method} {request.url} failed: {e!r}")
            raise as_transport_error(e) from e
