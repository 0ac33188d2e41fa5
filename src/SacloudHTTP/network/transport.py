"""Process-wide default transport.

Clients that are not given a transport share one lazily created
``httpx.HTTPTransport``.  Creation is guarded by a lock and the transport is
rebuilt after a fork so children never reuse the parent's sockets.
"""

from __future__ import annotations

import logging
import os
import ssl
import threading
from typing import Optional

import certifi
import httpx

logger = logging.getLogger(__name__)

_transport_lock = threading.Lock()
_transport: Optional[httpx.HTTPTransport] = None
_transport_pid: Optional[int] = None


def _create_ssl_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.load_verify_locations(certifi.where())
    return context


def create_transport() -> httpx.HTTPTransport:
    """Create a transport with a certifi-backed SSL context.

    Retries are disabled at the transport level; the client's retry loop owns
    them.
    """
    return httpx.HTTPTransport(verify=_create_ssl_context(), retries=0)


def get_default_transport() -> httpx.HTTPTransport:
    """Return the shared transport, creating it on first use."""
    global _transport, _transport_pid

    with _transport_lock:
        pid = os.getpid()
        if _transport is None or _transport_pid != pid:
            if _transport is not None:
                logger.debug("process fork detected, rebuilding default transport")
            _transport = create_transport()
            _transport_pid = pid
        return _transport


def close_default_transport() -> None:
    """Close the shared transport; the next call to get it builds a new one."""
    global _transport, _transport_pid

    with _transport_lock:
        if _transport is not None:
            _transport.close()
        _transport = None
        _transport_pid = None


__all__ = ["close_default_transport", "create_transport", "get_default_transport"]
