"""Cooperative cancellation primitives shared by API exchanges.

An exchange may spend most of its life waiting between attempts.  The
:class:`CancellationToken` lets the caller stop that wait from another thread,
or bound the whole exchange with a deadline, without interrupting threads.
"""

from __future__ import annotations

import threading
import time
from typing import Optional

from .errors import CancellationError, Cancelled, DeadlineExceeded


class CancellationToken:
    """Thread-safe cancellation token with an optional deadline.

    The deadline is expressed on the :func:`time.monotonic` clock.

    Examples:
        >>> token = CancellationToken()
        >>> token.error() is None
        True
        >>> token.cancel()
        >>> isinstance(token.error(), Cancelled)
        True
    """

    def __init__(self, deadline: Optional[float] = None) -> None:
        """Initialize a new cancellation token.

        Args:
            deadline: Monotonic timestamp after which the token counts as
                triggered, or ``None`` for no deadline.
        """
        self._is_cancelled = threading.Event()
        self._lock = threading.Lock()
        self._deadline = deadline

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancellationToken":
        """Create a token whose deadline is ``seconds`` from now."""
        return cls(deadline=time.monotonic() + seconds)

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    def cancel(self) -> None:
        """Signal that cancellation has been requested."""
        with self._lock:
            self._is_cancelled.set()

    def is_cancelled(self) -> bool:
        """Return ``True`` once the token was cancelled or its deadline passed."""
        return self.error() is not None

    def remaining(self) -> Optional[float]:
        """Seconds left until the deadline (never negative), ``None`` without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def error(self) -> Optional[CancellationError]:
        """Return the error describing why the token fired, if it has.

        Explicit cancellation wins over an expired deadline.
        """
        if self._is_cancelled.is_set():
            return Cancelled()
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return DeadlineExceeded()
        return None

    def raise_if_cancelled(self) -> None:
        error = self.error()
        if error is not None:
            raise error

    def sleep(self, seconds: float) -> None:
        """Wait ``seconds`` unless the token fires first.

        Returns as soon as cancellation is requested or the deadline passes,
        raising the corresponding :class:`CancellationError`.  Used as the
        tenacity ``sleep`` callable between attempts.
        """
        self.raise_if_cancelled()
        timeout = max(0.0, seconds)
        remaining = self.remaining()
        if remaining is not None and remaining < timeout:
            self._is_cancelled.wait(remaining)
            self.raise_if_cancelled()
            # Deadline is monotonic; a short wake-up means it has passed.
            raise DeadlineExceeded()
        self._is_cancelled.wait(timeout)
        self.raise_if_cancelled()

    def reset(self) -> None:
        """Clear an explicit cancellation.

        This should only be used for testing or when reusing tokens
        in controlled scenarios.  The deadline is left untouched.
        """
        with self._lock:
            self._is_cancelled.clear()


__all__ = ["CancellationToken"]
