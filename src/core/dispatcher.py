"""Request dispatcher: attempt loop, response classification and retries."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from src.core.errors import (
    DispatchError,
    HardClientError,
    InvalidEndpointError,
    InvalidPayloadError,
    InvalidTimeoutError,
    RetryExhaustedError,
    ServerError,
    SoftResponseError,
    TransportError,
)
from src.core.simulate import simulated_stats
from src.ports.endpoint import HTTP_METHODS, DispatchOptions, Endpoint
from src.ports.http import EncodedPayload, HttpRequestDto, HttpResponseDto, TransportPort
from src.ports.metrics import MetricsPort
from src.ports.result import (
    DispatchResult,
    HardFailure,
    RetryExhausted,
    SoftFailure,
    Success,
    ValidationFailure,
)
from src.ports.settings import SettingsPort
from src.ports.stats import TRANSPORT_FAILURE_CODE, AttemptStats, start_attempt

__all__ = ["Dispatcher", "WRITE_METHODS"]

logger = logging.getLogger(__name__)

WRITE_METHODS = frozenset({"PUT", "PATCH", "POST"})
BODY_HEADERS = frozenset({"content-length", "content-encoding", "content-type"})

EndpointResolver = Callable[[Any], Endpoint]
PayloadEncoder = Callable[[Any, bool], EncodedPayload]
HeaderBuilder = Callable[
    [Mapping[str, str], Mapping[str, str] | None, EncodedPayload], Mapping[str, str]
]


@dataclass(slots=True, frozen=True)
class _Call:
    """Everything fixed for the lifetime of one dispatch call."""

    endpoint: Endpoint
    method: str
    headers: Mapping[str, str]
    payload: EncodedPayload
    request: HttpRequestDto
    timeout_sec: float | None


class Dispatcher:
    """Deliver one payload to one endpoint with bounded retries.

    Each call runs its own attempt loop. Attempts are strictly sequential:
    attempt n+1 starts only after attempt n is classified and the fixed
    retry delay has elapsed.

    Outcome by status code, in this order:
    - 400: hard failure, never retried.
    - above 400: retried while budget remains.
    - 300-399: resolved, with a SoftResponseError attached to the record.
    - up to 299: success.
    Transport errors (including timeouts) are retried like statuses above 400.
    """

    def __init__(
        self,
        settings: SettingsPort,
        *,
        resolver: EndpointResolver,
        encoder: PayloadEncoder,
        header_builder: HeaderBuilder,
        transport: TransportPort | None = None,
        metrics: MetricsPort | None = None,
    ) -> None:
        """Initialize dispatcher.

        Args:
            settings: Delivery settings (simulate flag, timeouts, retry delay).
            resolver: Turns raw endpoint input into an Endpoint.
            encoder: Turns input data into an EncodedPayload.
            header_builder: Produces the final request headers.
            transport: Default transport for endpoints that carry none.
            metrics: Optional collector fed with every finished attempt.
        """
        self.settings = settings
        self.transport = transport
        self.metrics = metrics
        self._resolve = resolver
        self._encode = encoder
        self._build_headers = header_builder

    async def dispatch(
        self,
        endpoint_input: Any,
        input_data: Any,
        options: DispatchOptions | None = None,
    ) -> AttemptStats:
        """Deliver input_data and return the terminal attempt record.

        Args:
            endpoint_input: Endpoint, URL string or endpoint mapping.
            input_data: Payload; str/bytes sent as is, others JSON-encoded.
            options: Per-call method/header overrides.

        Returns:
            Terminal AttemptStats. For 3xx responses its error is set.

        Raises:
            InvalidEndpointError: Endpoint input missing or invalid.
            InvalidPayloadError: input_data cannot be serialized.
            InvalidTimeoutError: Timeout is not numeric.
            HardClientError: Endpoint answered 400.
            RetryExhaustedError: Every attempt in the budget failed.
        """
        result = await self.send(endpoint_input, input_data, options)
        return result.unwrap()

    async def send(
        self,
        endpoint_input: Any,
        input_data: Any,
        options: DispatchOptions | None = None,
    ) -> DispatchResult:
        """Deliver input_data and return the tagged outcome.

        Same behaviour as dispatch(), but failures are returned instead of
        raised.
        """
        try:
            call = self._prepare(endpoint_input, input_data, options)
        except (InvalidEndpointError, InvalidPayloadError, InvalidTimeoutError) as exc:
            return ValidationFailure(exc)

        if self.settings.simulate:
            stats = simulated_stats(call.endpoint, call.method, call.headers, call.payload)
            self._record(stats)
            return Success(stats)

        return await self._attempt_loop(call)

    def _prepare(
        self, endpoint_input: Any, input_data: Any, options: DispatchOptions | None
    ) -> _Call:
        """Resolve, validate and encode everything reused across attempts."""
        if endpoint_input is None or (
            not isinstance(endpoint_input, Endpoint) and not endpoint_input
        ):
            raise InvalidEndpointError("EM: INVALID ENDPOINT")

        endpoint = (
            endpoint_input
            if isinstance(endpoint_input, Endpoint)
            else self._resolve(endpoint_input)
        )

        method = ((options and options.method) or endpoint.method).upper()
        if method not in HTTP_METHODS:
            raise InvalidEndpointError(f"Unsupported HTTP method: {method}")

        timeout_sec = self._timeout_sec(endpoint)
        payload = self._encode(input_data, endpoint.compress)
        headers = self._build_headers(
            endpoint.headers, options.headers if options else None, payload
        )
        has_body = method in WRITE_METHODS

        request = HttpRequestDto(
            method=method,
            url=endpoint.href,
            headers=headers if has_body else _without_body_headers(headers),
            body=payload.body if has_body else None,
            query=endpoint.query,
            ssl=endpoint.ssl,
        )
        return _Call(
            endpoint=endpoint,
            method=method,
            headers=request.headers,
            payload=payload,
            request=request,
            timeout_sec=timeout_sec,
        )

    def _timeout_sec(self, endpoint: Endpoint) -> float | None:
        """Per-attempt timeout in seconds; None or 0 disables it."""
        raw = endpoint.timeout if endpoint.timeout is not None else self.settings.request_timeout_ms
        if raw is None:
            return None
        if isinstance(raw, bool):
            raise InvalidTimeoutError(f"timeout param is not a number [{raw}]")
        try:
            timeout_ms = float(raw)
        except (TypeError, ValueError) as e:
            raise InvalidTimeoutError(f"timeout param is not a number [{raw}]") from e
        if math.isnan(timeout_ms) or timeout_ms < 0:
            raise InvalidTimeoutError(f"timeout param is not a number [{raw}]")
        return timeout_ms / 1_000.0 or None

    async def _attempt_loop(self, call: _Call) -> DispatchResult:
        transport = call.endpoint.transport or self.transport
        if transport is None:
            raise RuntimeError("No transport configured; pass one to Dispatcher or Endpoint")

        href = call.endpoint.href
        max_retry = call.endpoint.max_retry
        attempt = 1

        while True:
            stats = start_attempt(
                call.endpoint, call.method, call.headers, call.payload.compressed, attempt
            )

            try:
                response = await self._send_once(transport, call)
            except TransportError as e:
                stats.ended_at = time.time()
                stats.status_code = TRANSPORT_FAILURE_CODE
                stats.error = e
                e.stats = stats
                failure: DispatchError = e
                logger.error(f"http.request to {href} failed on attempt {attempt}: {e}")
            else:
                stats.ended_at = time.time()
                outcome = self._classify(stats, response, call)
                if not isinstance(outcome, ServerError):
                    self._record(stats)
                    return outcome
                failure = outcome

            self._record(stats)
            logger.error(f"tryAgain: attempt {attempt} has failed. {href} {failure}")

            if attempt >= max_retry:
                error = RetryExhaustedError(attempt, failure, stats=stats)
                logger.error(error.message)
                stats.error = error
                return RetryExhausted(stats.freeze(), error)

            stats.freeze()
            await asyncio.sleep(self.settings.retry_delay_ms / 1_000.0)
            attempt += 1

    async def _send_once(self, transport: TransportPort, call: _Call) -> HttpResponseDto:
        """Send one request, turning timeouts and OS errors into TransportError."""
        try:
            if call.timeout_sec is None:
                return await transport.send(call.request)
            return await asyncio.wait_for(transport.send(call.request), call.timeout_sec)
        except TransportError:
            raise
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"Request aborted after {call.timeout_sec * 1_000.0:g} ms timeout"
            ) from e
        except OSError as e:
            raise TransportError(str(e) or e.__class__.__name__) from e

    def _classify(
        self, stats: AttemptStats, response: HttpResponseDto, call: _Call
    ) -> DispatchResult | ServerError:
        """Fill stats from the response; return the outcome, or the error to retry on."""
        code = response.status
        stats.status_code = code
        stats.response_headers = response.headers
        stats.response_body = response.body

        if code == 400:
            error: DispatchError = HardClientError(stats=stats)
            logger.error(f"Hard failure from {call.endpoint.href}: {stats.response_text}")
            stats.error = error
            return HardFailure(stats.freeze(), error)

        if code > 400:
            logger.error(f"Status {code} from {call.endpoint.href}: {stats.response_text}")
            server_error = ServerError(code, stats=stats)
            stats.error = server_error
            return server_error

        if code > 299:
            error = SoftResponseError(code, stats.response_text, call.payload.body, stats=stats)
            stats.error = error
            return SoftFailure(stats.freeze(), error)

        return Success(stats.freeze())

    def _record(self, stats: AttemptStats) -> None:
        """Feed a finished attempt to metrics. Failures are logged by the loop."""
        if self.metrics:
            self.metrics.update(stats)


def _without_body_headers(headers: Mapping[str, str]) -> Mapping[str, str]:
    """Drop headers describing a body that will not be sent."""
    return {k: v for k, v in headers.items() if k.lower() not in BODY_HEADERS}
