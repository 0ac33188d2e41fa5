"""Request body capture for replay across attempts."""

from __future__ import annotations

from collections.abc import Iterable

import httpx

from SacloudHTTP.errors import BodyCaptureError


class ReplayableBody:
    """Byte buffer holding a request body so every attempt sends it identically.

    A request built from ``bytes`` already carries a replayable stream, but a
    request built from an iterator or a file-like object can only be read
    once.  :meth:`capture` drains whatever stream the request carries before
    the first attempt; :meth:`replay` installs a fresh stream over the same
    bytes before each send.
    """

    __slots__ = ("_data",)

    def __init__(self, data: bytes = b"") -> None:
        self._data = data

    @classmethod
    def capture(cls, request: httpx.Request) -> "ReplayableBody":
        """Buffer the body of ``request``.

        Raises:
            BodyCaptureError: If the stream was already consumed, is async-only,
                or fails while being read.
        """
        if not isinstance(request.stream, Iterable):
            raise BodyCaptureError("request body is an async stream and cannot be read synchronously")
        try:
            data = request.read()
        except httpx.StreamConsumed as exc:
            raise BodyCaptureError("request body was already consumed and cannot be replayed") from exc
        except (RuntimeError, OSError) as exc:
            raise BodyCaptureError(f"unable to buffer request body: {exc}") from exc
        return cls(data)

    def __len__(self) -> int:
        return len(self._data)

    def __bool__(self) -> bool:
        return bool(self._data)

    @property
    def data(self) -> bytes:
        return self._data

    def replay(self, request: httpx.Request) -> httpx.Request:
        """Point ``request`` at a fresh stream over the captured bytes."""
        request.stream = httpx.ByteStream(self._data)
        return request


__all__ = ["ReplayableBody"]
