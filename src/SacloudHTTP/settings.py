# === NAVMAP v1 ===
# {
#   "module": "SacloudHTTP.settings",
#   "purpose": "Client configuration, process-wide defaults, and environment loading",
#   "sections": [
#     {"id": "defaults", "name": "ClientDefaults", "anchor": "class-clientdefaults", "kind": "class"},
#     {"id": "config", "name": "ClientConfig", "anchor": "class-clientconfig", "kind": "class"},
#     {"id": "environment", "name": "EnvironmentCredentials", "anchor": "class-environmentcredentials", "kind": "class"},
#     {"id": "overrides", "name": "EnvironmentOverrides", "anchor": "class-environmentoverrides", "kind": "class"},
#     {"id": "config-from-env", "name": "config_from_env", "anchor": "function-config-from-env", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Client configuration, process-wide defaults, and environment loading.

Two objects describe how a client behaves:

- :class:`ClientDefaults` is immutable and normally shared by the whole
  process through :data:`DEFAULTS`.  Replacing a default means building a new
  instance and handing it to the client, never mutating a global.
- :class:`ClientConfig` is owned by the caller.  Fields left as ``None`` are
  filled from the defaults exactly once, on first use, after which the config
  is sealed and shared read-only by every exchange that uses it.

Credentials may be read from ``SAKURACLOUD_ACCESS_TOKEN`` and
``SAKURACLOUD_ACCESS_TOKEN_SECRET``; optional ``SACLOUD_HTTP_*`` variables
override individual settings.
"""

from __future__ import annotations

import logging
import platform
import threading
from dataclasses import FrozenInstanceError, dataclass, field
from typing import Any, Callable, Optional

import httpx
from pydantic import Field
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError
from .network.retry import DefaultRetryPolicy, RetryPolicy
from .version import __version__

logger = logging.getLogger(__name__)

ACCESS_TOKEN_ENV = "SAKURACLOUD_ACCESS_TOKEN"
ACCESS_TOKEN_SECRET_ENV = "SAKURACLOUD_ACCESS_TOKEN_SECRET"

DEFAULT_USER_AGENT = (
    f"sacloud-http-python/v{__version__} ({platform.system().lower()}/{platform.machine().lower()})"
)

RequestCustomizer = Callable[[httpx.Request], None]

_DEFAULTED_FIELDS = (
    "user_agent",
    "accept_language",
    "max_attempts",
    "retry_wait_min",
    "retry_wait_max",
    "retry_policy",
)


@dataclass(frozen=True)
class ClientDefaults:
    """Immutable fallback values applied to unset :class:`ClientConfig` fields."""

    user_agent: str = DEFAULT_USER_AGENT
    accept_language: str = ""
    max_attempts: int = 11  # first attempt + 10 retries
    retry_wait_min: float = 1.0
    retry_wait_max: float = 64.0
    retry_policy: RetryPolicy = field(default_factory=DefaultRetryPolicy)


DEFAULTS = ClientDefaults()


@dataclass
class ClientConfig:
    """Configuration of a :class:`~SacloudHTTP.client.RetryingClient`.

    Attributes:
        access_token: Access token (Basic auth user name). Required.
        access_token_secret: Access token secret (Basic auth password). Required.
        user_agent: ``User-Agent`` sent when the request has none.
        accept_language: ``Accept-Language`` sent when set and the request has none.
        gzip: Advertise gzip and transparently decode gzip responses.
        max_attempts: Total attempts per exchange, the first one included.
        retry_wait_min: Minimum wait between attempts, in seconds.
        retry_wait_max: Maximum wait between attempts, in seconds.
        backoff_jitter: Randomise waits within the bounds.
        retry_policy: Decides whether an attempt's outcome is retried.
        transport: Transport performing the exchange; the shared default
            ``httpx.HTTPTransport`` when unset.
        request_customizer: Called with the request before the first attempt.
        trace: Dump every attempt through the trace logger.
        trace_only_error: With ``trace``, only dump failed attempts.
        trace_logger: Logger receiving trace output.
    """

    access_token: str
    access_token_secret: str
    user_agent: Optional[str] = None
    accept_language: Optional[str] = None
    gzip: bool = False
    max_attempts: Optional[int] = None
    retry_wait_min: Optional[float] = None
    retry_wait_max: Optional[float] = None
    backoff_jitter: bool = False
    retry_policy: Optional[RetryPolicy] = None
    transport: Optional[httpx.BaseTransport] = None
    request_customizer: Optional[RequestCustomizer] = None
    trace: bool = False
    trace_only_error: bool = False
    trace_logger: Optional[logging.Logger] = None
    _sealed: bool = field(default=False, init=False, repr=False, compare=False)
    _lock: Any = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_sealed", False):
            raise FrozenInstanceError(f"cannot assign to field {name!r}: configuration is in use")
        object.__setattr__(self, name, value)

    @property
    def sealed(self) -> bool:
        return self._sealed

    def ensure_defaults(self, defaults: ClientDefaults = DEFAULTS) -> "ClientConfig":
        """Fill unset fields from ``defaults`` once, validate, and seal.

        Later calls are no-ops, whatever ``defaults`` they pass.

        Raises:
            ConfigurationError: If credentials are missing or retry bounds are
                invalid.  The config stays unsealed in that case.
        """
        if self._sealed:
            return self
        with self._lock:
            if self._sealed:
                return self
            if not self.access_token or not self.access_token_secret:
                raise ConfigurationError("access_token and access_token_secret are required")
            resolved = {
                name: getattr(defaults, name) if getattr(self, name) is None else getattr(self, name)
                for name in _DEFAULTED_FIELDS
            }
            _validate_retry_bounds(
                resolved["max_attempts"], resolved["retry_wait_min"], resolved["retry_wait_max"]
            )
            for name, value in resolved.items():
                object.__setattr__(self, name, value)
            object.__setattr__(self, "_sealed", True)
        return self


def _validate_retry_bounds(max_attempts: int, wait_min: float, wait_max: float) -> None:
    if max_attempts < 1:
        raise ConfigurationError(f"max_attempts must be >= 1, got {max_attempts}")
    if wait_min < 0:
        raise ConfigurationError(f"retry_wait_min must be >= 0, got {wait_min}")
    if wait_max < wait_min:
        raise ConfigurationError(
            f"retry_wait_max ({wait_max}) must not be lower than retry_wait_min ({wait_min})"
        )


class EnvironmentCredentials(BaseSettings):
    """API credentials read from the process environment."""

    access_token: str = Field(default="", alias=ACCESS_TOKEN_ENV)
    access_token_secret: str = Field(default="", alias=ACCESS_TOKEN_SECRET_ENV)

    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore")


class EnvironmentOverrides(BaseSettings):
    """Optional ``SACLOUD_HTTP_*`` overrides for client settings."""

    user_agent: Optional[str] = None
    accept_language: Optional[str] = None
    gzip: Optional[bool] = None
    max_attempts: Optional[int] = Field(default=None, ge=1)
    retry_wait_min: Optional[float] = Field(default=None, ge=0)
    retry_wait_max: Optional[float] = Field(default=None, ge=0)
    trace: Optional[bool] = None
    trace_only_error: Optional[bool] = None

    model_config = SettingsConfigDict(
        env_prefix="SACLOUD_HTTP_", case_sensitive=False, extra="ignore"
    )


def config_from_env(**options: Any) -> ClientConfig:
    """Build a :class:`ClientConfig` from environment variables.

    Keyword ``options`` take precedence over ``SACLOUD_HTTP_*`` overrides.

    Raises:
        ConfigurationError: If a credential variable is missing or empty, or
            an override does not parse.
    """
    credentials = EnvironmentCredentials()
    if not credentials.access_token:
        raise ConfigurationError(f'environment variable "{ACCESS_TOKEN_ENV}" is required')
    if not credentials.access_token_secret:
        raise ConfigurationError(f'environment variable "{ACCESS_TOKEN_SECRET_ENV}" is required')

    try:
        overrides = EnvironmentOverrides()
    except PydanticValidationError as exc:
        raise ConfigurationError(f"invalid SACLOUD_HTTP_* environment override: {exc}") from exc

    values = overrides.model_dump(exclude_none=True)
    for name, value in values.items():
        if name not in options:
            logger.info("Config overridden: %s=%s", name, value, extra={"stage": "config"})
    values.update(options)
    return ClientConfig(
        access_token=credentials.access_token,
        access_token_secret=credentials.access_token_secret,
        **values,
    )


__all__ = [
    "ACCESS_TOKEN_ENV",
    "ACCESS_TOKEN_SECRET_ENV",
    "ClientConfig",
    "ClientDefaults",
    "DEFAULTS",
    "DEFAULT_USER_AGENT",
    "EnvironmentCredentials",
    "EnvironmentOverrides",
    "RequestCustomizer",
    "config_from_env",
]
