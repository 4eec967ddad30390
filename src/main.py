"""Application entrypoint: deliver one payload file to one endpoint."""

import asyncio
import logging
from functools import partial

from src.adapters.driven.config.settings import load_settings
from src.adapters.driven.endpoint.resolver import resolve_endpoint
from src.adapters.driven.http.client import HttpClient
from src.adapters.driven.http.headers import build_headers
from src.adapters.driven.http.payload import encode_payload
from src.adapters.driven.logging.logging_config import configure_logs
from src.adapters.driven.metrics.http_metrics import Metrics
from src.core.dispatcher import Dispatcher
from src.core.errors import DispatchError
from src.ports.http import TransportPort
from src.ports.metrics import MetricsPort
from src.ports.settings import SettingsPort

__all__ = ["build_dispatcher", "main"]

logger = logging.getLogger(__name__)


def build_dispatcher(
    settings: SettingsPort,
    transport: TransportPort | None = None,
    metrics: MetricsPort | None = None,
) -> Dispatcher:
    """Wire a Dispatcher with the default resolver, encoder and header builder.

    Args:
        settings: Delivery settings.
        transport: Default transport (e.g. an entered HttpClient).
        metrics: Optional attempt collector.

    Returns:
        Ready-to-use dispatcher.
    """
    return Dispatcher(
        settings,
        resolver=partial(resolve_endpoint, default_max_retry=settings.max_retry_attempts),
        encoder=encode_payload,
        header_builder=build_headers,
        transport=transport,
        metrics=metrics,
    )


async def main() -> int:
    """Deliver the configured payload once.

    Startup sequence:
    1. Configure logging.
    2. Load and validate configuration.
    3. Load the payload file.
    4. Dispatch with retries and log the terminal attempt.

    Returns:
        0 if the delivery resolved (success or 3xx), 1 otherwise.
    """
    configure_logs()
    logger.info("Starting delivery...")

    try:
        config = load_settings()
        if not config.delivery_endpoint:
            raise ValueError("DELIVERY_ENDPOINT is not set")
        payload = config.load_payload()
    except (RuntimeError, ValueError) as exc:
        logger.error(
            "Configuration error: %s\n"
            "Hint: check DELIVERY_ENDPOINT, PAYLOAD_FILE_PATH, MAX_RETRY_ATTEMPTS, "
            "RETRY_TIMEOUT_MS, REQUEST_TIMEOUT_MS and that the payload file is valid JSON.",
            exc,
        )
        return 1

    metrics = Metrics()

    async with HttpClient() as http:
        dispatcher = build_dispatcher(config.to_port(), transport=http, metrics=metrics)
        try:
            stats = await dispatcher.dispatch(config.delivery_endpoint, payload)
        except DispatchError as e:
            logger.error(f"Delivery failed: {e}")
            logger.info(f"Delivery metrics: {metrics}")
            return 1

    if stats.error is not None:
        logger.warning(f"Delivered with status {stats.status_code}: {stats.error}")
    else:
        logger.info(
            f"Delivered on attempt {stats.attempt} with status {stats.status_code} "
            f"in {stats.duration_ms or 0.0:.1f} ms"
        )
    logger.info(f"Delivery metrics: {metrics}")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(asyncio.run(main()))
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Shutdown requested by user (Ctrl+C).")
