"""Network subsystem: retry policy, backoff, request preparation and transports.

Modules:
- retry: retry decisions, the default policy, and the tenacity controller
- backoff: bounded exponential backoff with Retry-After support
- auth: Basic authentication and default API headers
- body: request body capture for replay across attempts
- compression: lazy gzip decoding of the final response
- instrumentation: transport decorator writing per-attempt HTTP traces
- transport: process-wide default ``httpx.HTTPTransport``
"""

from SacloudHTTP.network.auth import RequestAuthenticator, basic_auth_header
from SacloudHTTP.network.backoff import BoundedExponentialBackoff, compute_backoff, parse_retry_after
from SacloudHTTP.network.body import ReplayableBody
from SacloudHTTP.network.compression import GzipDecodingStream, GzipResponseAdapter
from SacloudHTTP.network.instrumentation import TracingTransport, dump_request, dump_response
from SacloudHTTP.network.retry import (
    RETRY,
    RETRYABLE_STATUSES,
    STOP,
    Attempt,
    DefaultRetryPolicy,
    RetryDecision,
    RetryPolicy,
    build_retrying,
    default_connectivity_check,
)
from SacloudHTTP.network.transport import (
    close_default_transport,
    create_transport,
    get_default_transport,
)

__all__ = [
    # Retry policy
    "Attempt",
    "DefaultRetryPolicy",
    "RETRY",
    "RETRYABLE_STATUSES",
    "RetryDecision",
    "RetryPolicy",
    "STOP",
    "build_retrying",
    "default_connectivity_check",
    # Backoff
    "BoundedExponentialBackoff",
    "compute_backoff",
    "parse_retry_after",
    # Request preparation
    "RequestAuthenticator",
    "ReplayableBody",
    "basic_auth_header",
    # Response handling and instrumentation
    "GzipDecodingStream",
    "GzipResponseAdapter",
    "TracingTransport",
    "dump_request",
    "dump_response",
    # Transport lifecycle
    "close_default_transport",
    "create_transport",
    "get_default_transport",
]
