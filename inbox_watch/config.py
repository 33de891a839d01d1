"""Monitor configuration.

Every group is a pydantic-settings model, so each field can also come from
an environment variable (``IMAP_EMAIL``, ``IMAP_TIMEOUT_CONNECT_SECONDS``,
``IMAP_POLL_MAX_WAIT_SECONDS``, ...).  Models are frozen: a config is an
immutable snapshot once built.

Programmatic callers use the validating builder::

    config = (
        ImapConfig.builder()
        .email("user@gmail.com")
        .password("app-password")
        .max_wait(60)
        .build()
    )

Invalid input fails in ``build()`` with a configuration-category error,
never later in a network operation.
"""

from __future__ import annotations

import re
from datetime import timedelta
from typing import Any

from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings

from .errors import InvalidConfigError, InvalidEmailFormatError
from .known_servers import ServerRegistry, discover_imap_host
from .proxy import Socks5Proxy

_LABEL = r"[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?"
_EMAIL_RE = re.compile(
    r"^[A-Za-z0-9!#$%&'*+/=?^_`{|}~-]+(?:\.[A-Za-z0-9!#$%&'*+/=?^_`{|}~-]+)*"
    rf"@{_LABEL}(?:\.{_LABEL})*$"
)


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email))


class TimeoutConfig(BaseSettings):
    """Independent time budget for each network stage."""

    model_config = {"env_prefix": "IMAP_TIMEOUT_", "frozen": True}

    connect_seconds: float = Field(default=30.0, gt=0, description="TCP + TLS connect")
    auth_seconds: float = Field(default=30.0, gt=0, description="IMAP LOGIN")
    select_seconds: float = Field(default=10.0, gt=0, description="IMAP SELECT")
    uid_fetch_seconds: float = Field(default=10.0, gt=0, description="NOOP + UID SEARCH")
    message_fetch_seconds: float = Field(default=30.0, gt=0, description="UID FETCH")
    logout_seconds: float = Field(default=5.0, gt=0, description="IMAP LOGOUT")

    @property
    def socket_seconds(self) -> float:
        """Socket-level timeout bounding a worker thread left behind by a stage timeout."""
        return max(
            self.connect_seconds,
            self.auth_seconds,
            self.select_seconds,
            self.uid_fetch_seconds,
            self.message_fetch_seconds,
            self.logout_seconds,
        )


class PollingConfig(BaseSettings):
    """Cadence and budget of ``wait_for_match``."""

    model_config = {"env_prefix": "IMAP_POLL_", "frozen": True}

    interval_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Seconds between mailbox polls",
    )
    max_wait_seconds: float = Field(
        default=300.0,
        ge=0,
        description="Total seconds to wait for a matching email",
    )


class RetryConfig(BaseSettings):
    """Retry / backoff settings driven by Tenacity."""

    model_config = {"env_prefix": "RETRY_", "frozen": True}

    max_attempts: int = Field(default=3, ge=1, description="Maximum attempts per call")
    initial_wait_seconds: float = Field(
        default=1.0,
        description="Initial backoff wait in seconds",
    )
    max_wait_seconds: float = Field(
        default=30.0,
        description="Maximum backoff wait in seconds",
    )
    multiplier: float = Field(default=2.0, description="Exponential backoff multiplier")


class ImapConfig(BaseSettings):
    """Everything needed to open and watch one mailbox."""

    model_config = {"env_prefix": "IMAP_", "frozen": True}

    email: str = Field(description="Login identity; its domain drives host discovery")
    password: SecretStr = Field(description="Password or app-specific password")
    host: str | None = Field(
        default=None,
        description="Explicit IMAP hostname (discovered from the email domain if unset)",
    )
    port: int = Field(default=993, ge=1, le=65535, description="IMAPS port")
    mailbox: str = Field(default="INBOX", description="Mailbox to select")
    proxy: Socks5Proxy | None = Field(default=None, description="Optional SOCKS5 proxy")
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        if not is_valid_email(value):
            raise ValueError("not a valid email address")
        return value

    @classmethod
    def builder(cls) -> ImapConfigBuilder:
        return ImapConfigBuilder()

    @property
    def effective_imap_host(self) -> str:
        if self.host:
            return self.host
        return discover_imap_host(self.email)

    @property
    def server_address(self) -> str:
        return f"{self.effective_imap_host}:{self.port}"


def _seconds(value: float | timedelta) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


class ImapConfigBuilder:
    """Chainable, validating constructor for :class:`ImapConfig`.

    Host resolution at ``build()``: explicit :meth:`imap_host`, then the
    :meth:`server_registry` if one was given, then the built-in table when
    the config is used.

    Unlike ``ImapConfig()``, the builder ignores ``IMAP_*`` environment
    variables: unset timeouts and polling values take their field defaults.
    """

    def __init__(self) -> None:
        self._email: str | None = None
        self._password: str | None = None
        self._host: str | None = None
        self._port: int = 993
        self._mailbox: str = "INBOX"
        self._proxy: Socks5Proxy | None = None
        self._registry: ServerRegistry | None = None
        self._timeouts: TimeoutConfig | None = None
        self._timeout_overrides: dict[str, float] = {}
        self._polling: PollingConfig | None = None
        self._polling_overrides: dict[str, float] = {}

    def email(self, email: str) -> ImapConfigBuilder:
        self._email = email
        return self

    def password(self, password: str) -> ImapConfigBuilder:
        self._password = password
        return self

    def imap_host(self, host: str) -> ImapConfigBuilder:
        self._host = host
        return self

    def imap_port(self, port: int) -> ImapConfigBuilder:
        self._port = port
        return self

    def mailbox(self, mailbox: str) -> ImapConfigBuilder:
        self._mailbox = mailbox
        return self

    def proxy(self, proxy: Socks5Proxy) -> ImapConfigBuilder:
        self._proxy = proxy
        return self

    def server_registry(self, registry: ServerRegistry) -> ImapConfigBuilder:
        self._registry = registry
        return self

    def timeouts(self, timeouts: TimeoutConfig) -> ImapConfigBuilder:
        self._timeouts = timeouts
        return self

    def connect_timeout(self, value: float | timedelta) -> ImapConfigBuilder:
        self._timeout_overrides["connect_seconds"] = _seconds(value)
        return self

    def auth_timeout(self, value: float | timedelta) -> ImapConfigBuilder:
        self._timeout_overrides["auth_seconds"] = _seconds(value)
        return self

    def select_timeout(self, value: float | timedelta) -> ImapConfigBuilder:
        self._timeout_overrides["select_seconds"] = _seconds(value)
        return self

    def uid_fetch_timeout(self, value: float | timedelta) -> ImapConfigBuilder:
        self._timeout_overrides["uid_fetch_seconds"] = _seconds(value)
        return self

    def message_fetch_timeout(self, value: float | timedelta) -> ImapConfigBuilder:
        self._timeout_overrides["message_fetch_seconds"] = _seconds(value)
        return self

    def logout_timeout(self, value: float | timedelta) -> ImapConfigBuilder:
        self._timeout_overrides["logout_seconds"] = _seconds(value)
        return self

    def polling(self, polling: PollingConfig) -> ImapConfigBuilder:
        self._polling = polling
        return self

    def poll_interval(self, value: float | timedelta) -> ImapConfigBuilder:
        self._polling_overrides["interval_seconds"] = _seconds(value)
        return self

    def max_wait(self, value: float | timedelta) -> ImapConfigBuilder:
        self._polling_overrides["max_wait_seconds"] = _seconds(value)
        return self

    def build(self) -> ImapConfig:
        if self._email is None:
            raise InvalidConfigError("email is required")
        if not is_valid_email(self._email):
            raise InvalidEmailFormatError(self._email)
        if self._password is None:
            raise InvalidConfigError("password is required")

        host = self._host
        if host is None and self._registry is not None:
            host = self._registry.discover(self._email)

        try:
            return ImapConfig(
                email=self._email,
                password=self._password,
                host=host,
                port=self._port,
                mailbox=self._mailbox,
                proxy=self._proxy,
                timeouts=_merge(TimeoutConfig, self._timeouts, self._timeout_overrides),
                polling=_merge(PollingConfig, self._polling, self._polling_overrides),
            )
        except ValidationError as exc:
            raise InvalidConfigError(_summarize(exc)) from exc


def _merge(model: type[BaseSettings], base: BaseSettings | None, overrides: dict[str, Any]) -> Any:
    # Every field is passed explicitly, so the environment never reaches a built group
    values = (base if base is not None else model.model_construct()).model_dump()
    values.update(overrides)
    return model(**values)


def _summarize(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return f"{location}: {first['msg']}" if location else first["msg"]
