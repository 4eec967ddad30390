"""Payload serialization and compression."""

import gzip
from typing import Any

from pydantic import TypeAdapter

from src.core.errors import InvalidPayloadError
from src.ports.http import EncodedPayload

__all__ = ["encode_payload"]

_json_adapter = TypeAdapter(Any)


def encode_payload(data: Any, compress: bool = False) -> EncodedPayload:
    """Turn input data into the bytes sent on the wire.

    - bytes pass through unchanged.
    - str is UTF-8 encoded unchanged.
    - anything else is serialized to compact JSON by pydantic, so models,
      dataclasses, datetimes, UUIDs, decimals and sets are accepted.
    - None becomes an empty body.

    Compression uses gzip with a fixed mtime, so the same input always
    yields the same bytes.

    Args:
        data: Application payload.
        compress: Gzip-compress the result.

    Returns:
        Encoded payload.

    Raises:
        InvalidPayloadError: If data has no JSON representation.
    """
    if data is None:
        body, content_type = b"", "application/octet-stream"
    elif isinstance(data, bytes | bytearray):
        body, content_type = bytes(data), "application/octet-stream"
    elif isinstance(data, str):
        body, content_type = data.encode("utf-8"), "application/json"
    else:
        try:
            body = _json_adapter.dump_json(data)
        except (TypeError, ValueError) as e:
            raise InvalidPayloadError(f"Payload is not JSON serializable: {e}") from e
        content_type = "application/json"

    if compress:
        body = gzip.compress(body, mtime=0)

    return EncodedPayload(body=body, compressed=compress, content_type=content_type)
