"""Reliability layer for Sakura Cloud style HTTP APIs.

A :class:`RetryingClient` turns a caller-built ``httpx.Request`` into an
authenticated exchange that is retried on 503/423 responses and transient
transport errors, spaced with bounded exponential backoff, optionally traced,
and transparently gzip decoded.

Example:
    >>> import httpx
    >>> from SacloudHTTP import CancellationToken, new_client
    >>> client = new_client("token", "secret", max_attempts=3, retry_wait_min=0.5)
    >>> token = CancellationToken.with_timeout(30)
    >>> client.send(httpx.Request("GET", "https://example.invalid/"), cancellation=token)  # doctest: +SKIP
"""

from .cancellation import CancellationToken
from .client import RetryingClient, new_client, new_client_from_env
from .errors import (
    BodyCaptureError,
    CancellationError,
    Cancelled,
    ConfigurationError,
    CustomizationError,
    DeadlineExceeded,
    DecodeError,
    SacloudHTTPError,
)
from .logging_config import setup_logging
from .network.retry import DefaultRetryPolicy, RetryDecision, RetryPolicy
from .network.instrumentation import TracingTransport
from .settings import DEFAULTS, ClientConfig, ClientDefaults, config_from_env
from .version import __version__

__all__ = [
    "BodyCaptureError",
    "CancellationError",
    "CancellationToken",
    "Cancelled",
    "ClientConfig",
    "ClientDefaults",
    "ConfigurationError",
    "CustomizationError",
    "DEFAULTS",
    "DeadlineExceeded",
    "DecodeError",
    "DefaultRetryPolicy",
    "RetryDecision",
    "RetryPolicy",
    "RetryingClient",
    "SacloudHTTPError",
    "TracingTransport",
    "__version__",
    "config_from_env",
    "new_client",
    "new_client_from_env",
    "setup_logging",
]
