"""
Structured Logging Utilities

This module centralizes logging setup for the API client. It provides helpers
for masking credentials before they reach log output, a JSON formatter for
machine-readable logs, and :func:`setup_logging` which wires a console handler
onto the package logger (trace output included).
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Dict, Optional, TextIO

MASKED = "***masked***"
SENSITIVE_HEADERS = frozenset({"authorization", "proxy-authorization", "cookie", "set-cookie"})
_SENSITIVE_KEYS = {
    "authorization",
    "access_token",
    "access_token_secret",
    "api_key",
    "apikey",
    "token",
    "secret",
    "password",
}
_RESERVED_RECORD_FIELDS = frozenset(vars(logging.makeLogRecord({})).keys()) | {"message", "asctime"}

PACKAGE_LOGGER_NAME = "SacloudHTTP"


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Remove secrets from structured payloads prior to logging.

    Args:
        payload: Arbitrary key-value pairs that may contain credentials.

    Returns:
        Copy of the payload where credential fields are replaced with
        `***masked***`.

    Examples:
        >>> mask_sensitive_data({"secret": "s3cr3t", "status": 503})
        {'secret': '***masked***', 'status': 503}
    """
    masked: Dict[str, object] = {}
    for key, value in payload.items():
        lower = key.lower()
        if lower in _SENSITIVE_KEYS:
            masked[key] = MASKED
        elif isinstance(value, str) and value.startswith("Basic "):
            masked[key] = MASKED
        else:
            masked[key] = value
    return masked


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per log record.

    Attributes passed through ``extra=`` are copied into the object.

    Examples:
        >>> formatter = JSONFormatter()
        >>> isinstance(formatter.format(logging.makeLogRecord({'msg': 'test'})), str)
        True
    """

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        log_obj: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED_RECORD_FIELDS and not key.startswith("_"):
                log_obj[key] = value
        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(log_obj), default=str)


def setup_logging(
    level: str = "INFO",
    *,
    json_output: bool = False,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """Configure the package logger with a single managed console handler.

    Calling this again replaces the handler installed by a previous call, so
    it is safe to invoke from tests or long-lived processes.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR).
        json_output: Emit JSON lines instead of plain text.
        stream: Destination stream; defaults to ``sys.stderr``.

    Returns:
        The configured ``SacloudHTTP`` logger.

    Examples:
        >>> logger = setup_logging("DEBUG")
        >>> logger.name
        'SacloudHTTP'
    """
    logger = logging.getLogger(PACKAGE_LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_sacloud_managed", False):
            logger.removeHandler(handler)
            handler.close()

    handler = logging.StreamHandler(stream or sys.stderr)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    handler._sacloud_managed = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return logger


__all__ = [
    "JSONFormatter",
    "MASKED",
    "PACKAGE_LOGGER_NAME",
    "SENSITIVE_HEADERS",
    "mask_sensitive_data",
    "setup_logging",
]
