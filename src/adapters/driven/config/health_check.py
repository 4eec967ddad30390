"""Configuration validator for container orchestration."""

import logging

from src.adapters.driven.config.settings import load_settings
from src.adapters.driven.logging.logging_config import configure_logs

__all__ = ["main"]

logger = logging.getLogger(__name__)


def main() -> int:
    """Run health check for container orchestration.

    Validates:
    - Retry and timeout environment variables are numeric.
    - The delivery endpoint, if set, is a valid HTTP(S) URL.

    Returns:
        0 if healthy, 1 if unhealthy.
    """
    configure_logs()

    try:
        settings = load_settings()
    except Exception as exc:
        logger.error(f"Dispatcher healthcheck FAILED: {exc}")
        return 1

    if settings.simulate:
        logger.warning("SIMULATE is on: no request will reach the network")

    logger.info("Dispatcher healthcheck OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
