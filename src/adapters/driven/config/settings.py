"""Configuration loading from environment variables and files."""

import json
import logging
import math
import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, HttpUrl, TypeAdapter, field_validator

from src.ports.endpoint import DEFAULT_MAX_RETRY
from src.ports.settings import DEFAULT_RETRY_DELAY_MS, SettingsPort

__all__ = ["Settings", "load_settings", "parse_flag", "parse_milliseconds", "parse_retry_count"]

load_dotenv()

logger = logging.getLogger(__name__)
_http_url_adapter = TypeAdapter(HttpUrl)

_TRUTHY = frozenset({"true", "yes", "on", "y", "t"})


class Settings(BaseModel):
    """Process-wide delivery configuration.

    Attributes:
        simulate: Return synthetic results instead of sending requests.
        max_retry_attempts: Default attempt budget per delivery.
        retry_timeout_ms: RETRY_TIMEOUT_MS as read; exposed only, the delay
            between attempts stays fixed at 500 ms.
        request_timeout_ms: Default per-attempt timeout; none when unset.
        delivery_endpoint: URL used by the one-shot entrypoint.
        payload_file_path: JSON payload file used by the one-shot entrypoint.
    """

    simulate: bool = Field(default=False, description="Skip network I/O.")
    max_retry_attempts: int = Field(default=DEFAULT_MAX_RETRY, ge=1)
    retry_timeout_ms: float | None = Field(default=None, ge=0)
    request_timeout_ms: float | None = Field(default=None, ge=0)
    delivery_endpoint: str | None = Field(
        default=None, description="HTTP endpoint that receives the payload."
    )
    payload_file_path: str | None = Field(
        default=None, description="Path to JSON file containing the payload."
    )

    @field_validator("delivery_endpoint")
    @classmethod
    def validate_delivery_endpoint(cls, v: str | None) -> str | None:
        """Validate that endpoint (if provided) is a valid HTTP(S) URL.

        Args:
            v: Endpoint URL to validate (can be None).

        Returns:
            The validated URL or None.

        Raises:
            ValueError: If URL is invalid.
        """
        if v is None:
            return v
        try:
            _http_url_adapter.validate_python(v)
        except Exception as e:
            raise ValueError(f"Invalid delivery endpoint: {e}") from e
        return v

    def to_port(self) -> SettingsPort:
        """Convert to the immutable settings consumed by the dispatcher."""
        return SettingsPort(
            simulate=self.simulate,
            max_retry_attempts=self.max_retry_attempts,
            retry_delay_ms=DEFAULT_RETRY_DELAY_MS,
            request_timeout_ms=self.request_timeout_ms,
        )

    def load_payload(self) -> Any:
        """Load the payload from the configured JSON file.

        Returns:
            Decoded JSON value.

        Raises:
            ValueError: If no file is configured, it is missing or invalid JSON.
        """
        if not self.payload_file_path:
            raise ValueError("PAYLOAD_FILE_PATH is not set")
        try:
            with open(self.payload_file_path) as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise ValueError(f"Payload file not found: {self.payload_file_path}") from e
        except json.JSONDecodeError as e:
            raise ValueError(f"Payload file contains invalid JSON: {self.payload_file_path}") from e

        logger.debug(f"Loaded payload from {self.payload_file_path}")
        return data


def parse_flag(raw: str | None) -> bool:
    """Interpret a boolean-ish environment value.

    "1", "true", "yes", "on" (any case) and any non-zero number are true.
    """
    if raw is None:
        return False
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    try:
        return float(value) != 0
    except ValueError:
        return False


def parse_retry_count(raw: str | None) -> int:
    """Absolute integer value of raw; 0, empty or non-numeric fall back to 3."""
    if not raw:
        return DEFAULT_MAX_RETRY
    try:
        count = abs(int(float(raw)))
    except (ValueError, OverflowError):
        logger.warning(
            f"MAX_RETRY_ATTEMPTS is not a number (got: {raw}), using {DEFAULT_MAX_RETRY}"
        )
        return DEFAULT_MAX_RETRY
    return count or DEFAULT_MAX_RETRY


def parse_milliseconds(name: str, raw: str | None) -> float | None:
    """Absolute numeric value of raw, or None when unset.

    Raises:
        RuntimeError: If raw is set but not a number.
    """
    if raw is None or raw.strip() == "":
        return None
    try:
        value = abs(float(raw))
    except ValueError as e:
        raise RuntimeError(f"{name} must be a number of milliseconds (got: {raw})") from e
    if math.isnan(value):
        raise RuntimeError(f"{name} must be a number of milliseconds (got: {raw})")
    return value


def load_settings() -> Settings:
    """Load and validate settings from environment.

    Optional environment variables:
    - SIMULATE: Boolean-ish flag enabling the synthetic bypass.
    - MAX_RETRY_ATTEMPTS: Positive integer (default 3).
    - RETRY_TIMEOUT_MS: Read and exposed; does not change the retry delay.
    - REQUEST_TIMEOUT_MS: Per-attempt timeout.
    - DELIVERY_ENDPOINT: URL for the one-shot entrypoint.
    - PAYLOAD_FILE_PATH: Payload file for the one-shot entrypoint.

    Returns:
        Validated Settings object.

    Raises:
        RuntimeError: If a timeout variable is not numeric.
        ValueError: If configuration is invalid.
    """
    settings = Settings(
        simulate=parse_flag(os.getenv("SIMULATE")),
        max_retry_attempts=parse_retry_count(os.getenv("MAX_RETRY_ATTEMPTS")),
        retry_timeout_ms=parse_milliseconds("RETRY_TIMEOUT_MS", os.getenv("RETRY_TIMEOUT_MS")),
        request_timeout_ms=parse_milliseconds(
            "REQUEST_TIMEOUT_MS", os.getenv("REQUEST_TIMEOUT_MS")
        ),
        delivery_endpoint=os.getenv("DELIVERY_ENDPOINT") or None,
        payload_file_path=os.getenv("PAYLOAD_FILE_PATH") or None,
    )

    logger.info(
        f"Dispatcher configured: simulate={settings.simulate}, "
        f"max_retry={settings.max_retry_attempts}, "
        f"retry_delay={DEFAULT_RETRY_DELAY_MS:g}ms, "
        f"request_timeout={settings.request_timeout_ms or '<none>'}ms"
    )

    return settings
