"""Streaming response body reader."""

from collections.abc import AsyncIterator
from typing import Protocol

__all__ = ["ChunkStream", "read_stream"]


class ChunkStream(Protocol):
    """Anything exposing aiohttp's StreamReader.iter_any()."""

    def iter_any(self) -> AsyncIterator[bytes]: ...


async def read_stream(stream: ChunkStream) -> bytes:
    """Drain a response body into one buffer.

    Chunks are kept in arrival order and joined only once the stream signals
    end-of-stream. A stream error propagates and partial data is dropped.

    Args:
        stream: Response body stream (e.g. ``ClientResponse.content``).

    Returns:
        The complete body.
    """
    chunks: list[bytes] = []
    async for chunk in stream.iter_any():
        chunks.append(chunk)
    return b"".join(chunks)
