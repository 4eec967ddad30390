"""Mapping of aiohttp failures onto transport errors."""

import asyncio

import aiohttp

from src.core.errors import TransportError

__all__ = ["RETRYABLE_ERRORS", "as_transport_error"]

# Exceptions considered transient; all surface as TransportError
RETRYABLE_ERRORS = (
    aiohttp.ClientConnectorError,  # Connection refused, DNS failed
    aiohttp.ClientConnectionError,  # Connection error, reset, disconnect
    aiohttp.ClientOSError,  # OS-level network error
    aiohttp.ServerTimeoutError,  # Socket read/connect timeout
    aiohttp.ClientPayloadError,  # Response body stream broke
    asyncio.TimeoutError,  # Total timeout from ClientTimeout
    OSError,  # Anything raised below aiohttp
)


def as_transport_error(exc: BaseException) -> TransportError:
    """Wrap a low-level failure into a TransportError.

    Args:
        exc: The original exception.

    Returns:
        TransportError whose message names the original error; the caller
        is expected to raise it ``from exc``.
    """
    detail = str(exc) or "no details"
    return TransportError(f"{exc.__class__.__name__}: {detail}")
