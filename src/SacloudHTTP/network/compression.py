"""Transparent gzip decoding of the final API response.

httpx transports hand back the body exactly as it came off the wire.  When
the client advertised ``Accept-Encoding: gzip`` the API may compress its JSON
payloads, so the final response is rewrapped with a stream that inflates the
body chunk by chunk as the caller reads it.  Only the response returned to the
caller is adapted; responses discarded by the retry loop never are.
"""

from __future__ import annotations

import logging
import zlib
from typing import Iterable, Iterator

import httpx

from SacloudHTTP.errors import DecodeError

LOGGER = logging.getLogger(__name__)

_GZIP_WBITS = zlib.MAX_WBITS | 16


def is_gzip_encoded(response: httpx.Response) -> bool:
    return response.headers.get("Content-Encoding", "").strip().lower() == "gzip"


class GzipDecodingStream(httpx.SyncByteStream):
    """Lazily inflate a gzip encoded byte stream.

    Nothing is read from ``raw`` until the stream is iterated.  Corrupt or
    truncated input raises :class:`DecodeError` from the iteration that
    encounters it.  Concatenated gzip members are decoded in sequence and an
    empty body decodes to nothing.
    """

    def __init__(self, raw: Iterable[bytes]) -> None:
        self._raw = raw

    def __iter__(self) -> Iterator[bytes]:
        decoder = zlib.decompressobj(_GZIP_WBITS)
        in_member = False
        for chunk in self._raw:
            while chunk:
                in_member = True
                try:
                    decoded = decoder.decompress(chunk)
                except zlib.error as exc:
                    raise DecodeError(f"invalid gzip response body: {exc}") from exc
                if decoded:
                    yield decoded
                if decoder.eof:
                    chunk = decoder.unused_data
                    decoder = zlib.decompressobj(_GZIP_WBITS)
                    in_member = False
                else:
                    chunk = b""
        if in_member:
            raise DecodeError("invalid gzip response body: unexpected end of stream")

    def close(self) -> None:
        close = getattr(self._raw, "close", None)
        if close is not None:
            close()


class GzipResponseAdapter:
    """Wrap gzip encoded responses when gzip support is enabled.

    With ``enabled=False`` responses pass through untouched; callers that
    manage decompression themselves read the encoded bytes with
    ``response.iter_raw()``.
    """

    def __init__(self, enabled: bool) -> None:
        self.enabled = enabled

    def adapt(self, response: httpx.Response) -> httpx.Response:
        if not self.enabled or not is_gzip_encoded(response):
            return response
        headers = response.headers.copy()
        # Both describe the encoded payload; httpx would otherwise decode again.
        del headers["Content-Encoding"]
        headers.pop("Content-Length", None)
        LOGGER.debug("decoding gzip response", extra={"status": response.status_code})
        return httpx.Response(
            status_code=response.status_code,
            headers=headers,
            stream=GzipDecodingStream(response.stream),
            request=response.request,
            extensions=response.extensions,
            history=response.history,
        )


__all__ = ["GzipDecodingStream", "GzipResponseAdapter", "is_gzip_encoded"]
