"""Exception hierarchy raised by the retrying API client.

Failures are grouped by the stage of an exchange that produced them: request
preparation (configuration, customization, body capture), cancellation, and
response decoding.  Transport failures are deliberately *not* wrapped: when an
exchange gives up on a connectivity problem the caller receives the original
``httpx.TransportError`` so existing httpx error handling keeps working.
"""

from __future__ import annotations

__all__ = [
    "SacloudHTTPError",
    "ConfigurationError",
    "CustomizationError",
    "BodyCaptureError",
    "CancellationError",
    "Cancelled",
    "DeadlineExceeded",
    "DecodeError",
]


class SacloudHTTPError(RuntimeError):
    """Base exception for failures raised by this package."""


class ConfigurationError(SacloudHTTPError):
    """Raised when credentials or retry bounds are missing or invalid."""


class CustomizationError(SacloudHTTPError):
    """Raised when the caller supplied request customizer fails."""


class BodyCaptureError(SacloudHTTPError):
    """Raised when a request body cannot be buffered for replay."""


class CancellationError(SacloudHTTPError):
    """Raised when the exchange's cancellation token fires.

    Always terminal: a cancelled exchange is never retried.
    """


class Cancelled(CancellationError):
    """The token was cancelled explicitly."""

    def __init__(self, message: str = "operation cancelled") -> None:
        super().__init__(message)


class DeadlineExceeded(CancellationError):
    """The token's deadline passed."""

    def __init__(self, message: str = "deadline exceeded") -> None:
        super().__init__(message)


class DecodeError(SacloudHTTPError):
    """Raised while reading a gzip encoded body that cannot be decompressed."""
