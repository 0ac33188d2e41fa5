# === NAVMAP v1 ===
# {
#   "module": "SacloudHTTP.network.instrumentation",
#   "purpose": "Per-attempt HTTP trace output through a transport decorator.",
#   "sections": [
#     {
#       "id": "dump-request",
#       "name": "dump_request",
#       "anchor": "function-dump-request",
#       "kind": "function"
#     },
#     {
#       "id": "dump-response",
#       "name": "dump_response",
#       "anchor": "function-dump-response",
#       "kind": "function"
#     },
#     {
#       "id": "tracingtransport",
#       "name": "TracingTransport",
#       "anchor": "class-tracingtransport",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Per-attempt HTTP trace output through a transport decorator.

:class:`TracingTransport` wraps any ``httpx.BaseTransport`` and writes a
wire-like dump of every request and response it sees to a logger.  Because it
sits below the retry loop, each attempt is traced separately.  The dump is
meant for humans debugging API calls; its layout is not a stable format.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import httpx

from SacloudHTTP.logging_config import MASKED, SENSITIVE_HEADERS

TRACE_LOGGER_NAME = "SacloudHTTP.trace"


def _format_headers(headers: httpx.Headers) -> List[str]:
    lines = []
    for name, value in headers.multi_items():
        if name.lower() in SENSITIVE_HEADERS:
            value = MASKED
        lines.append(f"{name}: {value}")
    return lines


def _format_body(body: bytes) -> List[str]:
    if not body:
        return []
    return ["", body.decode("utf-8", errors="replace")]


def dump_request(request: httpx.Request) -> str:
    """Render ``request`` as HTTP/1.1 text.

    The body is buffered with ``request.read()``, which leaves the request
    with a replayable stream over the same bytes.
    """
    target = request.url.raw_path.decode("ascii", errors="replace") or "/"
    lines = [f"{request.method} {target} HTTP/1.1"]
    lines.extend(_format_headers(request.headers))
    lines.extend(_format_body(request.read()))
    return "\r\n".join(lines)


def dump_response(response: httpx.Response, body: bytes) -> str:
    """Render ``response`` and its raw ``body`` as HTTP text."""
    version = response.extensions.get("http_version", b"HTTP/1.1")
    if isinstance(version, bytes):
        version = version.decode("ascii", errors="replace")
    reason = response.extensions.get("reason_phrase", b"")
    if isinstance(reason, bytes):
        reason = reason.decode("ascii", errors="replace")
    reason = reason or httpx.codes.get_reason_phrase(response.status_code)
    lines = [f"{version} {response.status_code} {reason}".rstrip()]
    lines.extend(_format_headers(response.headers))
    lines.extend(_format_body(body))
    return "\r\n".join(lines)


def is_error_status(status_code: int) -> bool:
    """Statuses outside 2xx/3xx count as errors for error-only tracing."""
    return not 200 <= status_code < 400


class TracingTransport(httpx.BaseTransport):
    """HTTPX transport decorator emitting a trace of every exchange.

    The response body is read from the inner transport and handed back to
    the caller as an in-memory stream holding the same raw bytes, so tracing
    never changes what the caller reads.  Transport errors are logged and
    re-raised unchanged.

    Args:
        inner: Transport performing the actual exchange.
        output_only_error: Only emit for transport errors and for responses
            whose status is not 2xx/3xx.
        logger: Destination logger; defaults to ``SacloudHTTP.trace``.
    """

    def __init__(
        self,
        inner: httpx.BaseTransport,
        *,
        output_only_error: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._inner = inner
        self.output_only_error = output_only_error
        self._logger = logger or logging.getLogger(TRACE_LOGGER_NAME)

    @property
    def inner(self) -> httpx.BaseTransport:
        return self._inner

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        request_dump = dump_request(request)
        if not self.output_only_error:
            self._logger.info("[TRACE] HTTP Request:\n%s", request_dump)

        try:
            response = self._inner.handle_request(request)
            try:
                body = b"".join(response.stream)
            finally:
                response.close()
        except httpx.TransportError as exc:
            if self.output_only_error:
                self._logger.info("[TRACE] HTTP Request:\n%s", request_dump)
            self._logger.info("[TRACE] HTTP Error: %r", exc)
            raise

        restored = httpx.Response(
            status_code=response.status_code,
            headers=response.headers,
            stream=httpx.ByteStream(body),
            request=request,
            extensions=response.extensions,
        )

        if not self.output_only_error or is_error_status(response.status_code):
            if self.output_only_error:
                self._logger.info("[TRACE] HTTP Request:\n%s", request_dump)
            self._logger.info("[TRACE] HTTP Response:\n%s", dump_response(restored, body))
        return restored

    def close(self) -> None:
        self._inner.close()


__all__ = ["TracingTransport", "dump_request", "dump_response", "is_error_status", "TRACE_LOGGER_NAME"]
