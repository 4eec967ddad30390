"""Synthetic responses for offline runs."""

import gzip
from collections.abc import Mapping

from src.ports.endpoint import Endpoint
from src.ports.http import EncodedPayload
from src.ports.stats import AttemptStats, start_attempt

__all__ = ["SIMULATED_STATUS", "simulated_stats"]

SIMULATED_STATUS = 200


def simulated_stats(
    endpoint: Endpoint,
    method: str,
    headers: Mapping[str, str],
    payload: EncodedPayload,
) -> AttemptStats:
    """Build a terminal record as if the endpoint had answered 200.

    The response body echoes the encoded request payload before
    compression.

    Args:
        endpoint: Resolved destination.
        method: HTTP verb that would have been sent.
        headers: Final request headers.
        payload: Encoded request payload.

    Returns:
        Frozen AttemptStats for attempt 1.
    """
    stats = start_attempt(endpoint, method, headers, payload.compressed, attempt=1)
    stats.ended_at = stats.started_at
    stats.status_code = SIMULATED_STATUS
    stats.response_headers = {"content-type": payload.content_type, "x-simulated": "1"}
    stats.response_body = gzip.decompress(payload.body) if payload.compressed else payload.body
    stats.simulated = True
    return stats.freeze()
