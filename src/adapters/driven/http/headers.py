"""Final request header construction."""

from collections.abc import Mapping
from types import MappingProxyType

from src.ports.http import EncodedPayload

__all__ = ["build_headers"]


def build_headers(
    defaults: Mapping[str, str],
    overrides: Mapping[str, str] | None,
    payload: EncodedPayload,
) -> Mapping[str, str]:
    """Build the headers sent on every attempt of one call.

    Any override mapping, even an empty one, replaces the endpoint defaults;
    there is no per-field merge. Names are lower-cased.

    Args:
        defaults: Endpoint default headers.
        overrides: Per-call headers, if any.
        payload: Encoded request payload.

    Returns:
        Read-only header mapping.
    """
    source = overrides if overrides is not None else defaults
    headers = {str(k).lower(): str(v) for k, v in source.items()}

    headers["content-length"] = str(len(payload.body))
    headers.setdefault("content-type", payload.content_type)
    if payload.compressed:
        headers["content-encoding"] = "gzip"
    else:
        headers.pop("content-encoding", None)

    return MappingProxyType(headers)
