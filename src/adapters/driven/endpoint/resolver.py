"""Endpoint resolution from URLs and raw configuration mappings."""

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from src.core.errors import InvalidEndpointError
from src.ports.endpoint import DEFAULT_MAX_RETRY, HTTP_METHODS, Endpoint

__all__ = ["EndpointConfig", "resolve_endpoint"]

logger = logging.getLogger(__name__)
_http_url_adapter = TypeAdapter(HttpUrl)


class EndpointConfig(BaseModel):
    """Raw endpoint configuration.

    Either ``url`` or ``host`` must be given. When both are present the URL
    provides host, port, path and query, and explicit fields are ignored.

    Attributes:
        url: Full http(s) URL.
        host: Target host, when no URL is given.
        port: Target port; defaults to 80/443 by scheme.
        path: Request path.
        scheme: "http" or "https".
        method: Default HTTP verb.
        headers: Default request headers.
        max_retry: Attempt budget; falls back to the process default.
        timeout: Per-attempt timeout in ms, validated at dispatch time.
        compress: Gzip payloads.
        query: Query-string parameters.
        transport: Transport handle overriding the dispatcher's.
        ssl: TLS context or flag for the transport.
    """

    model_config = ConfigDict(extra="ignore", arbitrary_types_allowed=True)

    url: str | None = None
    host: str | None = None
    port: int | None = Field(default=None, gt=0, lt=65536)
    path: str = "/"
    scheme: str = "http"
    method: str = "POST"
    headers: dict[str, str] = Field(default_factory=dict)
    max_retry: int | None = Field(default=None, ge=1)
    timeout: Any = None
    compress: bool = False
    query: dict[str, str] = Field(default_factory=dict)
    transport: Any = None
    ssl: Any = None

    @field_validator("method")
    @classmethod
    def validate_method(cls, v: str) -> str:
        """Normalize and check the HTTP verb.

        Args:
            v: Verb to validate.

        Returns:
            Upper-cased verb.

        Raises:
            ValueError: If the verb is not a standard HTTP method.
        """
        method = v.upper()
        if method not in HTTP_METHODS:
            raise ValueError(f"Unsupported HTTP method: {v}")
        return method

    @field_validator("scheme")
    @classmethod
    def validate_scheme(cls, v: str) -> str:
        scheme = v.lower()
        if scheme not in ("http", "https"):
            raise ValueError("Only http:// and https:// endpoints allowed")
        return scheme

    @model_validator(mode="after")
    def require_destination(self) -> "EndpointConfig":
        if not self.url and not self.host:
            raise ValueError("Either 'url' or 'host' is required")
        return self


def resolve_endpoint(raw: Any, default_max_retry: int = DEFAULT_MAX_RETRY) -> Endpoint:
    """Resolve raw endpoint input into an immutable Endpoint.

    Args:
        raw: Endpoint (returned unchanged), URL string or config mapping.
        default_max_retry: Attempt budget when the config sets none.

    Returns:
        Resolved endpoint.

    Raises:
        InvalidEndpointError: If input is empty, of an unknown type or invalid.
    """
    if isinstance(raw, Endpoint):
        return raw
    if not raw:
        raise InvalidEndpointError("EM: INVALID ENDPOINT")

    if isinstance(raw, str):
        data: Mapping[str, Any] = {"url": raw}
    elif isinstance(raw, Mapping):
        data = raw
    else:
        raise InvalidEndpointError(
            f"EM: INVALID ENDPOINT (unsupported type {type(raw).__name__})"
        )

    try:
        config = EndpointConfig.model_validate(data)
        endpoint = _from_config(config, default_max_retry)
    except (ValidationError, ValueError) as e:
        raise InvalidEndpointError(f"Invalid endpoint: {e}") from e

    logger.debug(f"Resolved endpoint {endpoint.method} {endpoint.href}")
    return endpoint


def _from_config(config: EndpointConfig, default_max_retry: int) -> Endpoint:
    query = dict(config.query)

    if config.url:
        url = _http_url_adapter.validate_python(config.url)
        if url.scheme not in ("http", "https"):
            raise ValueError("Only http:// and https:// endpoints allowed")
        scheme = url.scheme
        host = url.host or ""
        port = url.port or (443 if scheme == "https" else 80)
        path = url.path or "/"
        query = {**dict(url.query_params()), **query}
    else:
        scheme = config.scheme
        host = config.host or ""
        port = config.port or (443 if scheme == "https" else 80)
        path = config.path if config.path.startswith("/") else f"/{config.path}"

    return Endpoint(
        host=host,
        port=port,
        path=path,
        method=config.method,
        scheme=scheme,
        headers=dict(config.headers),
        max_retry=config.max_retry or default_max_retry,
        timeout=config.timeout,
        compress=config.compress,
        query=query,
        transport=config.transport,
        ssl=config.ssl,
    )
