"""Exception hierarchy for mailbox monitoring.

Every failure raised by this package is a :class:`MailboxError`.  Each
concrete class pins a ``kind``, an :class:`ErrorCategory` and whether the
same call could succeed if attempted again.  :func:`is_retryable` and
:func:`category_of` read those off any exception, so retry loops and log
pipelines never have to parse messages.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar


class ErrorCategory(str, Enum):
    """Coarse grouping of failures for logging and metrics."""

    CONFIGURATION = "configuration"
    NETWORK = "network"
    TIMEOUT = "timeout"
    PROTOCOL = "protocol"
    PARSE = "parse"
    NOT_FOUND = "not_found"


class MailboxError(Exception):
    """Base class for every error raised by ``inbox_watch``.

    Contextual fields passed as keyword arguments are kept on
    :attr:`context` and exposed as attributes.  The underlying library
    exception, if any, is chained as ``__cause__``.
    """

    kind: ClassVar[str] = "mailbox"
    category: ClassVar[ErrorCategory]
    retryable: ClassVar[bool] = False

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context
        for key, value in context.items():
            setattr(self, key, value)

    def to_dict(self) -> dict[str, Any]:
        """Machine-readable view, suitable for structured log fields."""
        data: dict[str, Any] = {
            "kind": self.kind,
            "category": self.category.value,
            "retryable": self.retryable,
            "message": self.message,
            **self.context,
        }
        if self.__cause__ is not None:
            data["cause"] = repr(self.__cause__)
        return data


def is_retryable(exc: BaseException) -> bool:
    """Return True if *exc* is a transient failure worth retrying."""
    return isinstance(exc, MailboxError) and exc.retryable


def category_of(exc: BaseException) -> ErrorCategory | None:
    """Return the category of *exc*, or None for foreign exceptions."""
    if isinstance(exc, MailboxError):
        return exc.category
    return None


# ----------------------------------------------------------------------
# Configuration (never retryable)
# ----------------------------------------------------------------------


class ConfigurationError(MailboxError, ValueError):
    category = ErrorCategory.CONFIGURATION


class InvalidEmailFormatError(ConfigurationError):
    kind = "invalid_email_format"

    def __init__(self, email: str) -> None:
        super().__init__(f"invalid email format: {email}", email=email)


class InvalidConfigError(ConfigurationError):
    kind = "invalid_config"

    def __init__(self, reason: str) -> None:
        super().__init__(f"invalid configuration: {reason}", reason=reason)


class InvalidTargetNameError(ConfigurationError):
    kind = "invalid_target_name"

    def __init__(self, host: str) -> None:
        super().__init__(f"invalid TLS server name for host '{host}'", host=host)


# ----------------------------------------------------------------------
# Network (retryable)
# ----------------------------------------------------------------------


class NetworkError(MailboxError):
    category = ErrorCategory.NETWORK
    retryable = True


class TcpConnectError(NetworkError):
    kind = "tcp_connect"

    def __init__(self, target: str) -> None:
        super().__init__(f"failed to connect to {target}", target=target)


class TlsConnectError(NetworkError):
    kind = "tls_connect"

    def __init__(self, target: str) -> None:
        super().__init__(f"failed to establish TLS connection to {target}", target=target)


class ProxyConnectError(NetworkError):
    kind = "proxy_connect"

    def __init__(self, proxy_host: str, target: str) -> None:
        super().__init__(
            f"failed to connect via SOCKS5 proxy {proxy_host} to {target}",
            proxy_host=proxy_host,
            target=target,
        )


# ----------------------------------------------------------------------
# Timeouts (retryable unless the caller's own budget ran out)
# ----------------------------------------------------------------------


class StageTimeoutError(MailboxError):
    category = ErrorCategory.TIMEOUT
    retryable = True


class ConnectTimeoutError(StageTimeoutError):
    kind = "connect_timeout"

    def __init__(self, target: str, timeout: float) -> None:
        super().__init__(
            f"connection timeout to {target} after {timeout}s",
            target=target,
            timeout=timeout,
        )


class AuthTimeoutError(StageTimeoutError):
    kind = "auth_timeout"

    def __init__(self, email: str, timeout: float) -> None:
        super().__init__(
            f"authentication timeout for {email} after {timeout}s",
            email=email,
            timeout=timeout,
        )


class SelectTimeoutError(StageTimeoutError):
    kind = "select_timeout"

    def __init__(self, mailbox: str, timeout: float) -> None:
        super().__init__(
            f"mailbox selection timeout for '{mailbox}' after {timeout}s",
            mailbox=mailbox,
            timeout=timeout,
        )


class UidFetchTimeoutError(StageTimeoutError):
    kind = "uid_fetch_timeout"

    def __init__(self, timeout: float) -> None:
        super().__init__(f"UID search timeout after {timeout}s", timeout=timeout)


class FetchTimeoutError(StageTimeoutError):
    kind = "fetch_timeout"

    def __init__(self, uid_range: str, timeout: float) -> None:
        super().__init__(
            f"message fetch timeout for UID range {uid_range} after {timeout}s",
            uid_range=uid_range,
            timeout=timeout,
        )


class WaitTimeoutError(StageTimeoutError):
    kind = "wait_timeout"
    retryable = False

    def __init__(self, timeout: float) -> None:
        super().__init__(f"timeout waiting for matching email after {timeout}s", timeout=timeout)


class LogoutTimeoutError(StageTimeoutError):
    kind = "logout_timeout"
    retryable = False

    def __init__(self, timeout: float) -> None:
        super().__init__(f"logout timeout after {timeout}s", timeout=timeout)


# ----------------------------------------------------------------------
# IMAP protocol (retryable, except logout)
# ----------------------------------------------------------------------


class ProtocolError(MailboxError):
    category = ErrorCategory.PROTOCOL
    retryable = True


class LoginError(ProtocolError):
    kind = "imap_login"

    def __init__(self, email: str) -> None:
        super().__init__(f"IMAP login failed for {email}", email=email)


class SelectMailboxError(ProtocolError):
    kind = "select_mailbox"

    def __init__(self, mailbox: str) -> None:
        super().__init__(f"failed to select mailbox '{mailbox}'", mailbox=mailbox)


class NoopError(ProtocolError):
    kind = "imap_noop"

    def __init__(self) -> None:
        super().__init__("IMAP NOOP command failed")


class SearchError(ProtocolError):
    kind = "imap_search"

    def __init__(self, query: str) -> None:
        super().__init__(f"IMAP search failed for query {query!r}", query=query)


class FetchError(ProtocolError):
    kind = "imap_fetch"

    def __init__(self, uid_range: str) -> None:
        super().__init__(f"IMAP fetch failed for UID range {uid_range}", uid_range=uid_range)


class FetchMessageError(ProtocolError):
    kind = "fetch_message"

    def __init__(self, uid_range: str) -> None:
        super().__init__(
            f"malformed message in fetch response for UID range {uid_range}",
            uid_range=uid_range,
        )


class LogoutError(ProtocolError):
    kind = "imap_logout"
    retryable = False

    def __init__(self) -> None:
        super().__init__("IMAP logout failed")


# ----------------------------------------------------------------------
# Message content (never retryable, isolated per message)
# ----------------------------------------------------------------------


class ParseError(MailboxError):
    category = ErrorCategory.PARSE


class ParseEmailError(ParseError):
    kind = "parse_email"

    def __init__(self, uid: int) -> None:
        super().__init__(f"failed to parse email UID {uid}", uid=uid)


class ExtractBodyError(ParseError):
    kind = "extract_body"

    def __init__(self, uid: int) -> None:
        super().__init__(f"failed to extract body from email UID {uid}", uid=uid)


# ----------------------------------------------------------------------
# Search outcome
# ----------------------------------------------------------------------


class NoMatchError(MailboxError):
    kind = "no_match"
    category = ErrorCategory.NOT_FOUND

    def __init__(self) -> None:
        super().__init__("no matching email found")
