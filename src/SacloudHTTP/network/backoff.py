# === NAVMAP v1 ===
# {
#   "module": "SacloudHTTP.network.backoff",
#   "purpose": "Bounded exponential backoff between retry attempts.",
#   "sections": [
#     {
#       "id": "parse-retry-after",
#       "name": "parse_retry_after",
#       "anchor": "function-parse-retry-after",
#       "kind": "function"
#     },
#     {
#       "id": "compute-backoff",
#       "name": "compute_backoff",
#       "anchor": "function-compute-backoff",
#       "kind": "function"
#     },
#     {
#       "id": "boundedexponentialbackoff",
#       "name": "BoundedExponentialBackoff",
#       "anchor": "class-boundedexponentialbackoff",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Bounded exponential backoff between retry attempts.

The wait before attempt ``n + 1`` is ``min_wait * 2 ** (n - 1)`` capped at
``max_wait``, so the first retry waits exactly ``min_wait``.  Optional full
jitter draws from ``[min_wait, computed]`` and a server supplied
``Retry-After`` hint (429/503 responses) replaces the computed value.  Every
returned wait is clamped to ``[min_wait, max_wait]``.

Example:
    >>> compute_backoff(1, 1.0, 64.0)
    1.0
    >>> compute_backoff(4, 1.0, 64.0)
    8.0
    >>> compute_backoff(10, 1.0, 64.0)
    64.0
"""

from __future__ import annotations

import email.utils
import random
from datetime import datetime, timezone
from typing import Callable, Optional

from tenacity import RetryCallState
from tenacity.wait import wait_base

RETRY_AFTER_STATUSES = frozenset({429, 503})


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Convert a Retry-After header value into a delay in seconds."""
    if not value:
        return None
    value = value.strip()
    try:
        delay = float(int(value))
    except ValueError:
        try:
            dt = email.utils.parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        delay = (dt - datetime.now(timezone.utc)).total_seconds()
    return max(0.0, delay)


def compute_backoff(
    attempt: int,
    min_wait: float,
    max_wait: float,
    *,
    jitter: bool = False,
    retry_after: Optional[float] = None,
    rand: Callable[[float, float], float] = random.uniform,
) -> float:
    """Return the wait in seconds before the attempt following ``attempt``.

    Args:
        attempt: Number of attempts made so far (1 before the first retry).
        min_wait: Lower bound and exponential seed, in seconds.
        max_wait: Upper bound, in seconds.
        jitter: Draw uniformly between ``min_wait`` and the computed value.
        retry_after: Server supplied delay that replaces the computed value.
        rand: Uniform random source, injectable for tests.

    Returns:
        Wait in seconds within ``[min_wait, max_wait]``.

    Raises:
        ValueError: If ``attempt`` is below 1 or the bounds are invalid.
    """
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    if min_wait < 0 or max_wait < min_wait:
        raise ValueError(f"invalid backoff bounds: min_wait={min_wait}, max_wait={max_wait}")

    if retry_after is not None:
        wait = retry_after
    else:
        # 2 ** 1024 overflows a float; anything past 64 doublings is capped anyway.
        exponent = min(attempt - 1, 64)
        wait = min(min_wait * (2.0**exponent), max_wait)
        if jitter and wait > min_wait:
            wait = rand(min_wait, wait)
    return min(max(wait, min_wait), max_wait)


class BoundedExponentialBackoff(wait_base):
    """Tenacity wait strategy wrapping :func:`compute_backoff`.

    The outcome of the last attempt is inspected for a ``Retry-After`` header
    when its response status is 429 or 503.  Outcomes are expected to expose
    the response as a ``response`` attribute (see ``network.retry.Attempt``)
    or to be the response itself.
    """

    def __init__(self, min_wait: float, max_wait: float, *, jitter: bool = False) -> None:
        self.min_wait = float(min_wait)
        self.max_wait = float(max_wait)
        self.jitter = jitter

    def __call__(self, retry_state: RetryCallState) -> float:
        return compute_backoff(
            retry_state.attempt_number,
            self.min_wait,
            self.max_wait,
            jitter=self.jitter,
            retry_after=self._retry_after(retry_state),
        )

    @staticmethod
    def _retry_after(retry_state: RetryCallState) -> Optional[float]:
        outcome = retry_state.outcome
        if outcome is None or outcome.failed:
            return None
        value = outcome.result()
        response = getattr(value, "response", value)
        status = getattr(response, "status_code", None)
        if status not in RETRY_AFTER_STATUSES:
            return None
        return parse_retry_after(response.headers.get("Retry-After"))


__all__ = ["BoundedExponentialBackoff", "compute_backoff", "parse_retry_after"]
