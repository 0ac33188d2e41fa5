"""Retry classification and the tenacity controller driving attempts.

Provides:
- :class:`Attempt` and :class:`RetryDecision`, the values passed between the
  attempt loop and the policy
- :class:`RetryPolicy`, the single-method capability callers may replace
- :class:`DefaultRetryPolicy`, which retries 0/503/423 responses and defers
  transport errors to a pluggable connectivity heuristic
- :func:`build_retrying`, the tenacity controller used by the client

Classification order matters: a triggered cancellation token stops the
exchange before anything else is considered, so a cancelled request is never
retried even when the last response was a 503.
"""

from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

import httpx
import tenacity
from tenacity import RetryCallState, retry_if_result, stop_after_attempt

from SacloudHTTP.cancellation import CancellationToken
from SacloudHTTP.network.backoff import BoundedExponentialBackoff

LOGGER = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({0, 423, 503})

ConnectivityCheck = Callable[[BaseException], bool]


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of :meth:`RetryPolicy.decide`.

    ``error`` is only set on a stop caused by a non-retriable failure such as
    cancellation; the client raises it instead of returning the outcome.
    """

    retry: bool
    error: Optional[BaseException] = None

    @classmethod
    def stop(cls, error: Optional[BaseException] = None) -> "RetryDecision":
        return cls(retry=False, error=error)


RETRY = RetryDecision(retry=True)
STOP = RetryDecision(retry=False)


@dataclass(frozen=True)
class Attempt:
    """One physical send of the request and what came back.

    Exactly one of ``response`` and ``error`` is set.
    """

    number: int
    request: httpx.Request
    response: Optional[httpx.Response] = None
    error: Optional[httpx.TransportError] = None
    decision: RetryDecision = STOP

    @property
    def status_code(self) -> Optional[int]:
        return None if self.response is None else self.response.status_code


class RetryPolicy(Protocol):
    """Capability deciding whether another attempt should be made."""

    def decide(self, outcome: Attempt, cancellation: CancellationToken) -> RetryDecision:
        ...


def _is_certificate_error(exc: BaseException) -> bool:
    seen = set()
    cause: Optional[BaseException] = exc
    while cause is not None and id(cause) not in seen:
        if isinstance(cause, ssl.SSLCertVerificationError):
            return True
        seen.add(id(cause))
        cause = cause.__cause__ or cause.__context__
    return "CERTIFICATE_VERIFY_FAILED" in str(exc)


def default_connectivity_check(exc: BaseException) -> bool:
    """Return ``True`` when a transport error is worth another attempt.

    Transient failures (connection, read/write, pool exhaustion, timeouts,
    a server dropping the connection mid-response) are retried.  Failures that
    will recur identically are not: unsupported schemes, malformed requests,
    proxy errors and certificate verification failures.
    """
    if isinstance(exc, (httpx.UnsupportedProtocol, httpx.LocalProtocolError, httpx.ProxyError)):
        return False
    if isinstance(exc, httpx.ConnectError) and _is_certificate_error(exc):
        return False
    return isinstance(
        exc,
        (
            httpx.TimeoutException,
            httpx.NetworkError,
            httpx.RemoteProtocolError,
        ),
    )


class DefaultRetryPolicy:
    """Standard policy: cancellation, then connectivity, then status code.

    Args:
        connectivity: Heuristic consulted for transport errors.
        statuses: Response status codes that trigger a retry.
    """

    def __init__(
        self,
        connectivity: ConnectivityCheck = default_connectivity_check,
        statuses: frozenset = RETRYABLE_STATUSES,
    ) -> None:
        self.connectivity = connectivity
        self.statuses = frozenset(statuses)

    def decide(self, outcome: Attempt, cancellation: CancellationToken) -> RetryDecision:
        error = cancellation.error()
        if error is not None:
            return RetryDecision.stop(error)
        if outcome.error is not None:
            return RETRY if self.connectivity(outcome.error) else STOP
        if outcome.status_code in self.statuses:
            return RETRY
        return STOP

    def __repr__(self) -> str:
        return f"DefaultRetryPolicy(statuses={sorted(self.statuses)})"


def _should_retry(attempt: Attempt) -> bool:
    return attempt.decision.retry


def _return_last_attempt(retry_state: RetryCallState) -> Any:
    """Surface the last outcome unchanged once attempts are exhausted."""
    LOGGER.warning(
        "Retry budget exhausted after %d attempts; returning final outcome",
        retry_state.attempt_number,
    )
    return retry_state.outcome.result()  # type: ignore[union-attr]


def _release_and_log(retry_state: RetryCallState) -> None:
    """Close the response being retried and log the upcoming wait."""
    attempt: Attempt = retry_state.outcome.result()  # type: ignore[union-attr]
    if attempt.response is not None:
        attempt.response.close()
    wait_s = retry_state.next_action.sleep if retry_state.next_action else 0.0
    reason = attempt.status_code if attempt.error is None else repr(attempt.error)
    LOGGER.warning(
        "retry attempt=%d reason=%s wait_ms=%d elapsed_s=%.1f",
        attempt.number,
        reason,
        int(wait_s * 1000),
        retry_state.seconds_since_start,
    )


def build_retrying(
    *,
    max_attempts: int,
    min_wait: float,
    max_wait: float,
    cancellation: CancellationToken,
    jitter: bool = False,
) -> tenacity.Retrying:
    """Build the tenacity controller for one exchange.

    The attempt callable must return an :class:`Attempt` whose ``decision``
    is already set; exceptions it raises are never retried.  The backoff
    sleep goes through ``cancellation.sleep`` so a triggered token ends the
    wait immediately.

    Args:
        max_attempts: Total attempts including the first one.
        min_wait: Minimum backoff in seconds.
        max_wait: Maximum backoff in seconds.
        cancellation: Token observed while waiting.
        jitter: Enable jitter within the backoff bounds.

    Returns:
        Configured tenacity Retrying controller.
    """
    return tenacity.Retrying(
        retry=retry_if_result(_should_retry),
        stop=stop_after_attempt(max_attempts),
        wait=BoundedExponentialBackoff(min_wait, max_wait, jitter=jitter),
        sleep=cancellation.sleep,
        before_sleep=_release_and_log,
        retry_error_callback=_return_last_attempt,
        reraise=True,
    )


__all__ = [
    "Attempt",
    "ConnectivityCheck",
    "DefaultRetryPolicy",
    "RETRY",
    "RETRYABLE_STATUSES",
    "RetryDecision",
    "RetryPolicy",
    "STOP",
    "build_retrying",
    "default_connectivity_check",
]
