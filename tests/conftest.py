# === NAVMAP v1 ===
# {
#   "module": "tests.conftest",
#   "purpose": "Shared pytest fixtures for suite",
#   "sections": [
#     {
#       "id": "reset-package-logger",
#       "name": "reset_package_logger",
#       "anchor": "function-reset-package-logger",
#       "kind": "function"
#     },
#     {
#       "id": "clean-environment",
#       "name": "clean_environment",
#       "anchor": "function-clean-environment",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Pytest Configuration

This module wires the shared HTTP mocking fixtures into every test and keeps
global state (package logger configuration, credential environment
variables, the shared default transport) from leaking between tests.
"""

from __future__ import annotations

import logging
import os
from typing import Generator

import pytest

from SacloudHTTP.logging_config import PACKAGE_LOGGER_NAME
from SacloudHTTP.network.transport import close_default_transport

# Import HTTP fixtures to make them globally available
from tests.fixtures.http_mocking import (  # noqa: F401
    http_mock,
    make_client,
    scripted_transport,
)

_ENVIRONMENT_PREFIXES = ("SAKURACLOUD_", "SACLOUD_HTTP_")


@pytest.fixture(autouse=True)
def reset_package_logger() -> Generator[None, None, None]:
    """Restore the package logger's level and handlers after each test."""
    logger = logging.getLogger(PACKAGE_LOGGER_NAME)
    level = logger.level
    handlers = list(logger.handlers)
    yield
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Hide credentials and overrides exported by the developer's shell."""
    for name in list(os.environ):
        if name.startswith(_ENVIRONMENT_PREFIXES):
            monkeypatch.delenv(name, raising=False)
    yield
    close_default_transport()
