"""Credential and default header injection for outbound API requests."""

from __future__ import annotations

import base64
import logging

import httpx

LOGGER = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
REQUESTED_WITH = "XMLHttpRequest"
# Resource IDs exceed 2**53; ask the API to emit them as JSON integers.
BIGINT_AS_INT_HEADER = "X-Sakura-Bigint-As-Int"


def basic_auth_header(token: str, secret: str) -> str:
    """Return the ``Authorization`` value for HTTP Basic credentials."""
    userpass = f"{token}:{secret}".encode("utf-8")
    return "Basic " + base64.b64encode(userpass).decode("ascii")


class RequestAuthenticator:
    """Adds Basic authentication and the API's default headers to a request.

    ``Authorization`` is always overwritten.  Every other header is only set
    when the caller has not set it already, so applying the authenticator
    twice leaves the request unchanged.

    Args:
        token: Access token, used as the Basic auth user name.
        secret: Access token secret, used as the Basic auth password.
        user_agent: Value for ``User-Agent``.
        accept_language: Value for ``Accept-Language``; skipped when empty.
        gzip: Advertise ``Accept-Encoding: gzip``.
    """

    def __init__(
        self,
        token: str,
        secret: str,
        *,
        user_agent: str,
        accept_language: str = "",
        gzip: bool = False,
    ) -> None:
        self._authorization = basic_auth_header(token, secret)
        self.user_agent = user_agent
        self.accept_language = accept_language
        self.gzip = gzip

    def authenticate(self, request: httpx.Request, *, has_body: bool) -> httpx.Request:
        """Apply credentials and default headers to ``request`` in place.

        Args:
            request: Prepared request; its headers are modified.
            has_body: Whether the captured request body is non-empty.

        Returns:
            The same request, for chaining.
        """
        headers = request.headers
        headers["Authorization"] = self._authorization
        if has_body:
            headers.setdefault("Content-Type", JSON_CONTENT_TYPE)
        if self.gzip:
            headers.setdefault("Accept-Encoding", "gzip")
        headers.setdefault("X-Requested-With", REQUESTED_WITH)
        headers.setdefault(BIGINT_AS_INT_HEADER, "1")
        headers.setdefault("User-Agent", self.user_agent)
        if self.accept_language:
            headers.setdefault("Accept-Language", self.accept_language)
        LOGGER.debug(
            "prepared request",
            extra={"method": request.method, "host": request.url.host, "path": request.url.path},
        )
        return request

    def __repr__(self) -> str:
        return f"RequestAuthenticator(user_agent={self.user_agent!r}, gzip={self.gzip})"


__all__ = ["RequestAuthenticator", "basic_auth_header", "BIGINT_AS_INT_HEADER"]
