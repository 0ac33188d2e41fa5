# === NAVMAP v1 ===
# {
#   "module": "SacloudHTTP.client",
#   "purpose": "Retrying, authenticating API client built on httpx transports and tenacity.",
#   "sections": [
#     {
#       "id": "retryingclient",
#       "name": "RetryingClient",
#       "anchor": "class-retryingclient",
#       "kind": "class"
#     },
#     {
#       "id": "new-client",
#       "name": "new_client",
#       "anchor": "function-new-client",
#       "kind": "function"
#     },
#     {
#       "id": "new-client-from-env",
#       "name": "new_client_from_env",
#       "anchor": "function-new-client-from-env",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Retrying, authenticating API client built on httpx transports and tenacity.

Responsibilities
----------------
- Prepare the request once: run the caller's customizer, buffer the body so it
  can be replayed, then add credentials and default headers.
- Drive attempts through the transport one after another under the retry
  policy, sleeping with bounded exponential backoff between them.  The wait
  observes the caller's :class:`~SacloudHTTP.cancellation.CancellationToken`.
- Hand the final response, and only the final response, to the gzip adapter,
  then read its body unless the caller asked to stream it.

Design Notes
------------
- The transport is any ``httpx.BaseTransport``.  With tracing enabled it is
  wrapped in a :class:`~SacloudHTTP.network.instrumentation.TracingTransport`
  that is rebuilt only when the underlying transport changes.
- Exhausting the attempts is not an error of its own: the caller receives the
  last response, or the last ``httpx.TransportError`` is raised.
- A token deadline also bounds each attempt through the httpx ``timeout``
  request extension.

Example:
    >>> import httpx
    >>> from SacloudHTTP import new_client
    >>> client = new_client("token", "secret", gzip=True)
    >>> response = client.send(httpx.Request("GET", "https://secure.sakura.ad.jp/cloud/zone/is1a/api/cloud/1.1/zone"))  # doctest: +SKIP
"""

from __future__ import annotations

import dataclasses
import itertools
import logging
import threading
from typing import Any, Iterator, Mapping, Optional

import httpx

from .cancellation import CancellationToken
from .errors import CustomizationError, SacloudHTTPError
from .network.auth import RequestAuthenticator
from .network.body import ReplayableBody
from .network.compression import GzipResponseAdapter
from .network.instrumentation import TracingTransport
from .network.retry import Attempt, build_retrying
from .network.transport import get_default_transport
from .settings import DEFAULTS, ClientConfig, ClientDefaults, config_from_env

LOGGER = logging.getLogger(__name__)

_TIMEOUT_KEYS = ("connect", "read", "write", "pool")


def _bound_timeout(request: httpx.Request, cancellation: CancellationToken) -> None:
    """Cap the request's httpx timeouts at the time left before the deadline."""
    remaining = cancellation.remaining()
    if remaining is None:
        return
    timeout = dict(request.extensions.get("timeout") or {})
    for key in _TIMEOUT_KEYS:
        current = timeout.get(key)
        timeout[key] = remaining if current is None else min(current, remaining)
    request.extensions["timeout"] = timeout


class RetryingClient:
    """Send prepared requests with authentication, retries and gzip decoding.

    The client holds no per-exchange state, so one instance (and its config)
    can serve concurrent exchanges from several threads.

    Args:
        config: Caller-owned configuration; sealed on first use.
        defaults: Values for fields the config leaves unset.
    """

    def __init__(self, config: ClientConfig, *, defaults: ClientDefaults = DEFAULTS) -> None:
        self._config = config
        self._defaults = defaults
        self._tracing: Optional[TracingTransport] = None
        self._lock = threading.Lock()

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def transport(self) -> httpx.BaseTransport:
        """Transport for the next attempt, including the tracing wrapper if enabled.

        Without a configured transport the shared default is looked up on
        every access, so a forked child picks up its own rebuilt transport.
        """
        config = self._config
        inner = config.transport or get_default_transport()
        if not config.trace:
            return inner
        with self._lock:
            if self._tracing is None or self._tracing.inner is not inner:
                self._tracing = TracingTransport(
                    inner,
                    output_only_error=config.trace_only_error,
                    logger=config.trace_logger,
                )
            return self._tracing

    def send(
        self,
        request: httpx.Request,
        *,
        cancellation: Optional[CancellationToken] = None,
        stream: bool = False,
    ) -> httpx.Response:
        """Perform one exchange for ``request``.

        Args:
            request: Request built by the caller; it is modified in place
                (headers, body stream, timeout extension).
            cancellation: Token carrying explicit cancellation and an optional
                deadline.  Never cancelled when omitted.
            stream: Return the response unread.  The caller then reads it
                (``read()``, ``iter_bytes()``, ``iter_raw()``) and closes it.

        Returns:
            The final response, gzip decoded when enabled.  Non-retriable
            statuses and the last retried status are returned, not raised.

        Raises:
            ConfigurationError: Invalid configuration; no attempt was made.
            CustomizationError: The request customizer failed; no attempt was made.
            BodyCaptureError: The body could not be buffered; no attempt was made.
            CancellationError: The token fired before or during the exchange.
            httpx.TransportError: The last attempt failed without a response,
                or reading the final body failed.
            DecodeError: The gzip encoded body could not be decoded while
                reading it.
        """
        token = cancellation or CancellationToken()
        config = self._config.ensure_defaults(self._defaults)
        body = self._prepare(request, config)

        retrying = build_retrying(
            max_attempts=config.max_attempts,
            min_wait=config.retry_wait_min,
            max_wait=config.retry_wait_max,
            cancellation=token,
            jitter=config.backoff_jitter,
        )
        attempt: Attempt = retrying(self._attempt, request, body, token, itertools.count(1))

        if attempt.error is not None:
            raise attempt.error
        if attempt.response is None:
            raise SacloudHTTPError(f"attempt {attempt.number} produced neither a response nor an error")

        response = GzipResponseAdapter(config.gzip).adapt(attempt.response)
        if stream:
            return response
        try:
            response.read()
        except BaseException:
            response.close()
            raise
        return response

    def request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        content: Optional[bytes] = None,
        json: Any = None,
        cancellation: Optional[CancellationToken] = None,
        stream: bool = False,
    ) -> httpx.Response:
        """Build a request from the arguments and :meth:`send` it."""
        request = httpx.Request(
            method, url, params=params, headers=headers, content=content, json=json
        )
        return self.send(request, cancellation=cancellation, stream=stream)

    def _prepare(self, request: httpx.Request, config: ClientConfig) -> ReplayableBody:
        if config.request_customizer is not None:
            try:
                config.request_customizer(request)
            except CustomizationError:
                raise
            except Exception as exc:
                raise CustomizationError(f"request customizer failed: {exc}") from exc

        body = ReplayableBody.capture(request)
        authenticator = RequestAuthenticator(
            config.access_token,
            config.access_token_secret,
            user_agent=config.user_agent,
            accept_language=config.accept_language,
            gzip=config.gzip,
        )
        authenticator.authenticate(request, has_body=bool(body))
        return body

    def _attempt(
        self,
        request: httpx.Request,
        body: ReplayableBody,
        cancellation: CancellationToken,
        numbers: Iterator[int],
    ) -> Attempt:
        number = next(numbers)
        body.replay(request)
        _bound_timeout(request, cancellation)

        try:
            response = self.transport.handle_request(request)
        except httpx.TransportError as exc:
            outcome = Attempt(number=number, request=request, error=exc)
        else:
            response.request = request
            outcome = Attempt(number=number, request=request, response=response)

        decision = self._config.retry_policy.decide(outcome, cancellation)
        LOGGER.debug(
            "attempt=%d status=%s error=%r retry=%s",
            number,
            outcome.status_code,
            outcome.error,
            decision.retry,
        )
        if decision.error is not None:
            if outcome.response is not None:
                outcome.response.close()
            raise decision.error from outcome.error
        return dataclasses.replace(outcome, decision=decision)


def new_client(access_token: str, access_token_secret: str, **options: Any) -> RetryingClient:
    """Create a client; ``options`` are :class:`ClientConfig` fields."""
    return RetryingClient(
        ClientConfig(access_token=access_token, access_token_secret=access_token_secret, **options)
    )


def new_client_from_env(**options: Any) -> RetryingClient:
    """Create a client with credentials from ``SAKURACLOUD_ACCESS_TOKEN[_SECRET]``.

    Raises:
        ConfigurationError: If either variable is missing or empty.
    """
    return RetryingClient(config_from_env(**options))


__all__ = ["RetryingClient", "new_client", "new_client_from_env"]
