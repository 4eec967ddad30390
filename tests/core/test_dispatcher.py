"""Tests for the request dispatcher attempt loop."""

import asyncio
import datetime
import decimal
import json
import logging
import uuid
from collections.abc import Iterator
from functools import partial
from typing import Any
from unittest.mock import AsyncMock, Mock, patch

import pytest

from src.adapters.driven.config.settings import load_settings
from src.adapters.driven.endpoint.resolver import resolve_endpoint
from src.adapters.driven.http.headers import build_headers
from src.adapters.driven.http.payload import encode_payload
from src.core.dispatcher import Dispatcher
from src.core.errors import (
    HardClientError,
    InvalidEndpointError,
    InvalidPayloadError,
    InvalidTimeoutError,
    RetryExhaustedError,
    ServerError,
    SoftResponseError,
    TransportError,
)
from src.ports.endpoint import DispatchOptions, Endpoint
from src.ports.http import HttpRequestDto, HttpResponseDto
from src.ports.result import HardFailure, RetryExhausted, SoftFailure, Success, ValidationFailure
from src.ports.settings import SettingsPort

__all__ = []

HANG = "hang"


class FakeTransport:
    """Transport replaying a scripted list of outcomes.

    Each outcome is a status code, an exception to raise, or HANG to block
    until cancelled.
    """

    def __init__(self, *outcomes: Any) -> None:
        self.outcomes = list(outcomes)
        self.requests: list[HttpRequestDto] = []

    async def send(self, request: HttpRequestDto) -> HttpResponseDto:
        """Record request and play the next outcome."""
        self.requests.append(request)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome == HANG:
            await asyncio.sleep(60)
        return HttpResponseDto(
            status=outcome, headers={"content-type": "text/plain"}, body=b"server says hi"
        )


def make_dispatcher(
    transport: FakeTransport | None = None,
    settings: SettingsPort | None = None,
    metrics: Any = None,
) -> Dispatcher:
    settings = settings or SettingsPort()
    return Dispatcher(
        settings,
        resolver=partial(resolve_endpoint, default_max_retry=settings.max_retry_attempts),
        encoder=encode_payload,
        header_builder=build_headers,
        transport=transport,
        metrics=metrics,
    )


def make_endpoint(**overrides: Any) -> Endpoint:
    fields: dict[str, Any] = {"host": "example.com", "port": 80, "path": "/events"}
    fields.update(overrides)
    return Endpoint(**fields)


@pytest.fixture
def fast_sleep() -> Iterator[AsyncMock]:
    """Replace the retry delay with an instant mock."""
    mock_sleep = AsyncMock()
    with patch("src.core.dispatcher.asyncio.sleep", mock_sleep):
        yield mock_sleep


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [200, 201, 204, 299])
async def test_success_resolves_on_first_attempt(status: int) -> None:
    """Statuses up to 299 resolve after one attempt with no error attached."""
    transport = FakeTransport(status)
    dispatcher = make_dispatcher(transport)

    stats = await dispatcher.dispatch(make_endpoint(), {"event": "signup"})

    assert stats.attempt == 1
    assert stats.status_code == status
    assert stats.error is None
    assert stats.response_body == b"server says hi"
    assert stats.ended_at is not None and stats.ended_at >= stats.started_at
    assert len(transport.requests) == 1


@pytest.mark.asyncio
async def test_status_400_fails_hard_without_retry(fast_sleep: AsyncMock) -> None:
    """Status 400 rejects after exactly one attempt whatever the budget."""
    transport = FakeTransport(400, 200)
    dispatcher = make_dispatcher(transport)

    with pytest.raises(HardClientError) as exc_info:
        await dispatcher.dispatch(make_endpoint(max_retry=5), {"event": "signup"})

    assert exc_info.value.stats is not None
    assert exc_info.value.stats.attempt == 1
    assert exc_info.value.stats.status_code == 400
    assert len(transport.requests) == 1
    fast_sleep.assert_not_called()


@pytest.mark.asyncio
async def test_status_400_returns_hard_failure_result() -> None:
    """send() reports status 400 as a HardFailure outcome."""
    dispatcher = make_dispatcher(FakeTransport(400))

    result = await dispatcher.send(make_endpoint(), "payload")

    assert isinstance(result, HardFailure)
    assert result.ok is False
    assert isinstance(result.error, HardClientError)
    assert result.stats.error is result.error


@pytest.mark.asyncio
async def test_server_errors_exhaust_retry_budget(fast_sleep: AsyncMock) -> None:
    """Statuses above 400 are retried up to max_retry with a fixed delay."""
    transport = FakeTransport(500, 502, 503)
    dispatcher = make_dispatcher(transport)

    with pytest.raises(RetryExhaustedError) as exc_info:
        await dispatcher.dispatch(make_endpoint(max_retry=3), {"event": "signup"})

    error = exc_info.value
    assert "(3)" in str(error)
    assert "Status Code: 503" in str(error)
    assert isinstance(error.last_error, ServerError)
    assert error.stats is not None
    assert error.stats.attempt == 3
    assert error.stats.status_code == 503
    assert error.stats.error is error
    assert len(transport.requests) == 3
    assert fast_sleep.await_count == 2
    fast_sleep.assert_awaited_with(0.5)


@pytest.mark.asyncio
async def test_server_error_then_success(fast_sleep: AsyncMock) -> None:
    """A retry that succeeds resolves with the later attempt number."""
    transport = FakeTransport(503, 200)
    dispatcher = make_dispatcher(transport)

    stats = await dispatcher.dispatch(make_endpoint(), {"event": "signup"})

    assert stats.attempt == 2
    assert stats.status_code == 200
    assert stats.error is None
    fast_sleep.assert_awaited_once_with(0.5)


@pytest.mark.asyncio
async def test_retry_timeout_env_keeps_fixed_delay(
    fast_sleep: AsyncMock, monkeypatch: pytest.MonkeyPatch
) -> None:
    """RETRY_TIMEOUT_MS is read but the delay between attempts stays 500 ms."""
    for name in ("SIMULATE", "MAX_RETRY_ATTEMPTS", "REQUEST_TIMEOUT_MS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("RETRY_TIMEOUT_MS", "5000")
    transport = FakeTransport(500, 200)
    dispatcher = make_dispatcher(transport, settings=load_settings().to_port())

    stats = await dispatcher.dispatch(make_endpoint(), {"event": "signup"})

    assert stats.attempt == 2
    fast_sleep.assert_awaited_once_with(0.5)


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [300, 301, 302, 304, 399])
async def test_redirect_band_resolves_with_attached_error(status: int) -> None:
    """3xx statuses resolve, but the record carries a SoftResponseError."""
    transport = FakeTransport(status)
    dispatcher = make_dispatcher(transport)

    stats = await dispatcher.dispatch(make_endpoint(), {"event": "signup"})

    assert stats.attempt == 1
    assert stats.status_code == status
    assert isinstance(stats.error, SoftResponseError)
    assert f'"statusCode": {status}' in str(stats.error)
    assert "server says hi" in str(stats.error)
    assert len(transport.requests) == 1


@pytest.mark.asyncio
async def test_redirect_band_returns_soft_failure_result() -> None:
    """send() reports 3xx as a resolved SoftFailure."""
    dispatcher = make_dispatcher(FakeTransport(302))

    result = await dispatcher.send(make_endpoint(), "payload")

    assert isinstance(result, SoftFailure)
    assert result.ok is True
    assert result.unwrap() is result.stats


@pytest.mark.asyncio
async def test_transport_errors_are_retried(fast_sleep: AsyncMock) -> None:
    """Connection failures are retried like server errors."""
    transport = FakeTransport(
        TransportError("connection refused"), TransportError("connection reset"), 200
    )
    dispatcher = make_dispatcher(transport)

    stats = await dispatcher.dispatch(make_endpoint(), {"event": "signup"})

    assert stats.attempt == 3
    assert stats.status_code == 200
    assert fast_sleep.await_count == 2


@pytest.mark.asyncio
async def test_transport_errors_exhaust_with_599(fast_sleep: AsyncMock) -> None:
    """Exhausting on transport errors records status 599."""
    transport = FakeTransport(*(TransportError("connection refused") for _ in range(3)))
    dispatcher = make_dispatcher(transport)

    with pytest.raises(RetryExhaustedError) as exc_info:
        await dispatcher.dispatch(make_endpoint(), {"event": "signup"})

    assert exc_info.value.stats is not None
    assert exc_info.value.stats.status_code == 599
    assert isinstance(exc_info.value.last_error, TransportError)
    assert "connection refused" in str(exc_info.value)


@pytest.mark.asyncio
async def test_os_errors_count_as_transport_errors(fast_sleep: AsyncMock) -> None:
    """Raw OS errors from a transport are funneled into the retry path."""
    transport = FakeTransport(ConnectionRefusedError("refused"), 201)
    dispatcher = make_dispatcher(transport)

    stats = await dispatcher.dispatch(make_endpoint(), "x")

    assert stats.attempt == 2
    assert stats.status_code == 201


@pytest.mark.asyncio
async def test_mixed_failures_share_one_budget(fast_sleep: AsyncMock) -> None:
    """Transport errors and server errors count against the same budget."""
    transport = FakeTransport(TransportError("reset"), 502, TransportError("reset"), 200)
    dispatcher = make_dispatcher(transport)

    with pytest.raises(RetryExhaustedError, match=r"\(3\)"):
        await dispatcher.dispatch(make_endpoint(max_retry=3), "x")

    assert len(transport.requests) == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("failure", [500, TransportError("connection refused")])
async def test_single_attempt_budget_fails_immediately(
    fast_sleep: AsyncMock, failure: Any
) -> None:
    """With max_retry=1 any failure exhausts at once, with no delay."""
    transport = FakeTransport(failure, 200)
    dispatcher = make_dispatcher(transport)

    result = await dispatcher.send(make_endpoint(max_retry=1), "x")

    assert isinstance(result, RetryExhausted)
    assert isinstance(result.error, RetryExhaustedError)
    assert "(1)" in str(result.error)
    assert len(transport.requests) == 1
    fast_sleep.assert_not_called()


@pytest.mark.asyncio
async def test_timeout_aborts_attempt_and_retries() -> None:
    """An attempt exceeding the timeout is aborted and retried."""
    transport = FakeTransport(HANG, 200)
    dispatcher = make_dispatcher(transport, settings=SettingsPort(retry_delay_ms=0))

    stats = await dispatcher.dispatch(make_endpoint(timeout=20, max_retry=2), "x")

    assert stats.attempt == 2
    assert stats.status_code == 200


@pytest.mark.asyncio
async def test_timeout_on_last_attempt_exhausts() -> None:
    """A timeout on the last attempt is a transport failure with status 599."""
    transport = FakeTransport(HANG)
    dispatcher = make_dispatcher(transport, settings=SettingsPort(retry_delay_ms=0))

    with pytest.raises(RetryExhaustedError) as exc_info:
        await dispatcher.dispatch(make_endpoint(timeout="20", max_retry=1), "x")

    assert isinstance(exc_info.value.last_error, TransportError)
    assert "timeout" in str(exc_info.value.last_error)
    assert exc_info.value.stats is not None
    assert exc_info.value.stats.status_code == 599


@pytest.mark.asyncio
async def test_settings_timeout_applies_when_endpoint_has_none() -> None:
    """The process-wide request timeout is the fallback."""
    transport = FakeTransport(HANG)
    settings = SettingsPort(retry_delay_ms=0, request_timeout_ms=20)
    dispatcher = make_dispatcher(transport, settings=settings)

    result = await dispatcher.send(make_endpoint(max_retry=1), "x")

    assert isinstance(result, RetryExhausted)
    assert isinstance(result.error.__cause__, TransportError)


@pytest.mark.asyncio
@pytest.mark.parametrize("timeout", ["abc", "NaN", True, [5], -1])
async def test_invalid_timeout_fails_before_network(timeout: Any) -> None:
    """Non-numeric timeouts raise InvalidTimeoutError without sending."""
    transport = FakeTransport(200)
    dispatcher = make_dispatcher(transport)

    with pytest.raises(InvalidTimeoutError, match="timeout param is not a number"):
        await dispatcher.dispatch(make_endpoint(timeout=timeout), "x")

    assert transport.requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize("endpoint_input", [None, "", {}])
async def test_missing_endpoint_fails_before_network(endpoint_input: Any) -> None:
    """Empty endpoint input raises InvalidEndpointError without sending."""
    transport = FakeTransport(200)
    dispatcher = make_dispatcher(transport)

    with pytest.raises(InvalidEndpointError):
        await dispatcher.dispatch(endpoint_input, "x")

    result = await dispatcher.send(endpoint_input, "x")
    assert isinstance(result, ValidationFailure)
    assert transport.requests == []


@pytest.mark.asyncio
async def test_simulate_skips_network() -> None:
    """Simulate mode returns a synthetic success without any request."""
    transport = FakeTransport()
    dispatcher = make_dispatcher(transport, settings=SettingsPort(simulate=True))

    result = await dispatcher.send(make_endpoint(), {"event": "signup"})

    assert isinstance(result, Success)
    stats = result.stats
    assert stats.attempt == 1
    assert 200 <= (stats.status_code or 0) <= 299
    assert stats.simulated is True
    assert stats.response_body == b'{"event":"signup"}'
    assert transport.requests == []


@pytest.mark.asyncio
async def test_simulate_works_without_transport() -> None:
    """Simulate mode needs no transport at all."""
    dispatcher = make_dispatcher(None, settings=SettingsPort(simulate=True))

    stats = await dispatcher.dispatch("http://example.com/in", "hello")

    assert stats.status_code == 200


@pytest.mark.asyncio
async def test_simulate_echoes_uncompressed_payload() -> None:
    """Compressed payloads are echoed in their plain JSON form."""
    dispatcher = make_dispatcher(None, settings=SettingsPort(simulate=True))

    stats = await dispatcher.dispatch(make_endpoint(compress=True), {"event": "signup"})

    assert stats.response_body == b'{"event":"signup"}'
    assert stats.compressed is True


@pytest.mark.asyncio
async def test_same_bytes_sent_on_every_retry(fast_sleep: AsyncMock) -> None:
    """Body and headers are computed once and re-sent verbatim."""
    data = {"event": "signup", "user": {"id": 7, "tags": ["a", "b"]}}
    transport = FakeTransport(500, TransportError("reset"), 200)
    dispatcher = make_dispatcher(transport)

    await dispatcher.dispatch(make_endpoint(compress=True), data)

    expected = encode_payload(data, compress=True).body
    assert [r.body for r in transport.requests] == [expected] * 3
    assert len({tuple(sorted(r.headers.items())) for r in transport.requests}) == 1
    assert transport.requests[0].headers["content-encoding"] == "gzip"


@pytest.mark.asyncio
@pytest.mark.parametrize("method", ["GET", "DELETE", "head", "OPTIONS"])
async def test_non_write_methods_send_no_body(method: str) -> None:
    """Only PUT, PATCH and POST carry the payload."""
    transport = FakeTransport(200)
    dispatcher = make_dispatcher(transport)

    await dispatcher.dispatch(make_endpoint(), {"event": "signup"}, DispatchOptions(method=method))

    request = transport.requests[0]
    assert request.method == method.upper()
    assert request.body is None
    assert "content-length" not in request.headers


@pytest.mark.asyncio
@pytest.mark.parametrize("method", ["POST", "put", "Patch"])
async def test_write_methods_send_body(method: str) -> None:
    """PUT, PATCH and POST (any case) carry the payload."""
    transport = FakeTransport(200)
    dispatcher = make_dispatcher(transport)

    await dispatcher.dispatch(make_endpoint(method=method.upper()), "hello")

    request = transport.requests[0]
    assert request.body == b"hello"
    assert request.headers["content-length"] == "5"


@pytest.mark.asyncio
async def test_option_headers_replace_endpoint_headers() -> None:
    """Per-call headers win entirely over endpoint defaults."""
    transport = FakeTransport(200)
    dispatcher = make_dispatcher(transport)
    endpoint = make_endpoint(headers={"X-Api-Key": "secret"})

    stats = await dispatcher.dispatch(
        endpoint, "x", DispatchOptions(headers={"Authorization": "Bearer t"})
    )

    headers = transport.requests[0].headers
    assert headers["authorization"] == "Bearer t"
    assert "x-api-key" not in headers
    assert stats.request_headers == headers


@pytest.mark.asyncio
async def test_empty_option_headers_drop_endpoint_headers() -> None:
    """An empty per-call header mapping still replaces the endpoint defaults."""
    transport = FakeTransport(200)
    dispatcher = make_dispatcher(transport)
    endpoint = make_endpoint(headers={"X-Api-Key": "secret"})

    await dispatcher.dispatch(endpoint, "x", DispatchOptions(headers={}))

    headers = transport.requests[0].headers
    assert "x-api-key" not in headers
    assert headers["content-length"] == "1"


@pytest.mark.asyncio
async def test_rich_python_values_are_serialized() -> None:
    """Datetimes, UUIDs and decimals are sent as their JSON forms."""
    transport = FakeTransport(200)
    dispatcher = make_dispatcher(transport)
    data = {
        "at": datetime.datetime(2024, 1, 1),
        "id": uuid.UUID("12345678-1234-5678-1234-567812345678"),
        "amount": decimal.Decimal("1.50"),
    }

    result = await dispatcher.send(make_endpoint(), data)

    assert isinstance(result, Success)
    assert json.loads(transport.requests[0].body or b"") == {
        "at": "2024-01-01T00:00:00",
        "id": "12345678-1234-5678-1234-567812345678",
        "amount": "1.50",
    }


@pytest.mark.asyncio
async def test_unserializable_payload_fails_before_network() -> None:
    """Data with no JSON form is a validation failure, not an exception from send()."""
    transport = FakeTransport(200)
    dispatcher = make_dispatcher(transport)

    result = await dispatcher.send(make_endpoint(), {"handle": object()})

    assert isinstance(result, ValidationFailure)
    assert isinstance(result.error, InvalidPayloadError)
    with pytest.raises(InvalidPayloadError):
        await dispatcher.dispatch(make_endpoint(), {"handle": object()})
    assert transport.requests == []


@pytest.mark.asyncio
async def test_raw_url_is_resolved() -> None:
    """URL strings are resolved into an endpoint before sending."""
    transport = FakeTransport(200)
    dispatcher = make_dispatcher(transport)

    stats = await dispatcher.dispatch("https://api.example.com/v1/events?source=test", "x")

    request = transport.requests[0]
    assert request.url == "https://api.example.com/v1/events"
    assert request.query == {"source": "test"}
    assert stats.path == "/v1/events"


@pytest.mark.asyncio
async def test_endpoint_transport_takes_precedence() -> None:
    """A transport carried by the endpoint overrides the dispatcher's."""
    default_transport = FakeTransport(500)
    endpoint_transport = FakeTransport(200)
    dispatcher = make_dispatcher(default_transport)

    await dispatcher.dispatch(make_endpoint(transport=endpoint_transport), "x")

    assert default_transport.requests == []
    assert len(endpoint_transport.requests) == 1


@pytest.mark.asyncio
async def test_missing_transport_raises() -> None:
    """Dispatching without any transport is a programming error."""
    dispatcher = make_dispatcher(None)

    with pytest.raises(RuntimeError, match="No transport configured"):
        await dispatcher.dispatch(make_endpoint(), "x")


@pytest.mark.asyncio
async def test_metrics_see_every_attempt(fast_sleep: AsyncMock) -> None:
    """Every attempt record, not just the terminal one, reaches metrics."""
    metrics = Mock()
    transport = FakeTransport(500, 200)
    dispatcher = make_dispatcher(transport, metrics=metrics)

    await dispatcher.dispatch(make_endpoint(), "x")

    recorded = [call.args[0] for call in metrics.update.call_args_list]
    assert [s.attempt for s in recorded] == [1, 2]
    assert [s.status_code for s in recorded] == [500, 200]
    assert recorded[0] is not recorded[1]


@pytest.mark.asyncio
async def test_terminal_record_is_frozen() -> None:
    """The returned record can no longer be modified."""
    dispatcher = make_dispatcher(FakeTransport(200))

    stats = await dispatcher.dispatch(make_endpoint(), "x")

    assert stats.frozen is True
    with pytest.raises(AttributeError):
        stats.status_code = 500


@pytest.mark.asyncio
async def test_failures_are_logged_at_error_level(
    fast_sleep: AsyncMock, caplog: pytest.LogCaptureFixture
) -> None:
    """Server errors, transport errors and exhaustion are logged."""
    transport = FakeTransport(500, TransportError("reset"))
    dispatcher = make_dispatcher(transport)

    with caplog.at_level(logging.ERROR, logger="src.core.dispatcher"):
        with pytest.raises(RetryExhaustedError):
            await dispatcher.dispatch(make_endpoint(max_retry=2), "x")

    messages = [r.getMessage() for r in caplog.records if r.levelno == logging.ERROR]
    assert any("Status 500" in m for m in messages)
    assert any("reset" in m and "attempt 2" in m for m in messages)
    assert any("exceeded max delivery attempts (2)" in m for m in messages)


@pytest.mark.asyncio
async def test_success_and_soft_failure_are_not_logged_as_errors(
    caplog: pytest.LogCaptureFixture,
) -> None:
    """No error-level log for resolved outcomes."""
    dispatcher = make_dispatcher(FakeTransport(200, 302))

    with caplog.at_level(logging.ERROR, logger="src.core.dispatcher"):
        await dispatcher.dispatch(make_endpoint(), "x")
        await dispatcher.dispatch(make_endpoint(), "x")

    assert [r for r in caplog.records if r.levelno >= logging.ERROR] == []


@pytest.mark.asyncio
async def test_success_writes_no_log_records(caplog: pytest.LogCaptureFixture) -> None:
    """A delivery that succeeds first time logs nothing at any level."""
    dispatcher = make_dispatcher(FakeTransport(200))

    with caplog.at_level(logging.DEBUG):
        await dispatcher.dispatch(make_endpoint(), {"event": "signup"})

    assert [r for r in caplog.records if r.name.startswith("src.")] == []


@pytest.mark.asyncio
async def test_concurrent_calls_keep_separate_attempt_counters(fast_sleep: AsyncMock) -> None:
    """Attempt numbering is scoped to each call."""
    dispatcher = make_dispatcher()
    first = make_endpoint(transport=FakeTransport(500, 500, 200))
    second = make_endpoint(transport=FakeTransport(200))

    stats_a, stats_b = await asyncio.gather(
        dispatcher.dispatch(first, "a"), dispatcher.dispatch(second, "b")
    )

    assert stats_a.attempt == 3
    assert stats_b.attempt == 1
