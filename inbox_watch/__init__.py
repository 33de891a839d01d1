"""Inbox Watch: pull OTP codes and verification links out of an IMAP mailbox.

Public API re-exported here for convenience::

    from inbox_watch import ImapConfig, MailboxMonitor, OtpMatcher
"""

from .config import ImapConfig, ImapConfigBuilder, PollingConfig, RetryConfig, TimeoutConfig
from .errors import (
    AuthTimeoutError,
    ConfigurationError,
    ConnectTimeoutError,
    ErrorCategory,
    ExtractBodyError,
    FetchError,
    FetchMessageError,
    FetchTimeoutError,
    InvalidConfigError,
    InvalidEmailFormatError,
    InvalidTargetNameError,
    LoginError,
    LogoutError,
    LogoutTimeoutError,
    MailboxError,
    NetworkError,
    NoMatchError,
    NoopError,
    ParseEmailError,
    ParseError,
    ProtocolError,
    ProxyConnectError,
    SearchError,
    SelectMailboxError,
    SelectTimeoutError,
    StageTimeoutError,
    TcpConnectError,
    TlsConnectError,
    UidFetchTimeoutError,
    WaitTimeoutError,
    category_of,
    is_retryable,
)
from .guard import MonitorGuard
from .known_servers import KNOWN_SERVERS, ServerRegistry, discover_imap_host
from .logging import setup_logging
from .matcher import ClosureMatcher, Matcher, OtpMatcher, RegexMatcher, UrlMatcher
from .monitor import MailboxMonitor
from .parser import ExtractKind, ExtractResult, extract_match
from .proxy import Socks5Proxy
from .retry import with_retry
from .session import FetchedMessage, ImapSession, open_session

__all__ = [
    "KNOWN_SERVERS",
    "AuthTimeoutError",
    "ClosureMatcher",
    "ConfigurationError",
    "ConnectTimeoutError",
    "ErrorCategory",
    "ExtractBodyError",
    "ExtractKind",
    "ExtractResult",
    "FetchError",
    "FetchMessageError",
    "FetchTimeoutError",
    "FetchedMessage",
    "ImapConfig",
    "ImapConfigBuilder",
    "ImapSession",
    "InvalidConfigError",
    "InvalidEmailFormatError",
    "InvalidTargetNameError",
    "LoginError",
    "LogoutError",
    "LogoutTimeoutError",
    "MailboxError",
    "MailboxMonitor",
    "Matcher",
    "MonitorGuard",
    "NetworkError",
    "NoMatchError",
    "NoopError",
    "OtpMatcher",
    "ParseEmailError",
    "ParseError",
    "PollingConfig",
    "ProtocolError",
    "ProxyConnectError",
    "RegexMatcher",
    "RetryConfig",
    "SearchError",
    "SelectMailboxError",
    "SelectTimeoutError",
    "ServerRegistry",
    "Socks5Proxy",
    "StageTimeoutError",
    "TcpConnectError",
    "TimeoutConfig",
    "TlsConnectError",
    "UidFetchTimeoutError",
    "UrlMatcher",
    "WaitTimeoutError",
    "category_of",
    "discover_imap_host",
    "extract_match",
    "is_retryable",
    "open_session",
    "setup_logging",
    "with_retry",
]
