"""Shared test fixtures for the inbox_watch test suite."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from unittest.mock import MagicMock

import pytest

from inbox_watch.config import ImapConfig, PollingConfig, TimeoutConfig
from inbox_watch.monitor import MailboxMonitor
from inbox_watch.session import ImapSession


@pytest.fixture
def imap_config() -> ImapConfig:
    return (
        ImapConfig.builder()
        .email("user@example.com")
        .password("secret")
        .imap_host("imap.test.com")
        .poll_interval(0.01)
        .max_wait(1.0)
        .build()
    )


def make_config(
    *,
    timeouts: TimeoutConfig | None = None,
    polling: PollingConfig | None = None,
) -> ImapConfig:
    builder = ImapConfig.builder().email("user@example.com").password("secret")
    builder.imap_host("imap.test.com")
    if timeouts is not None:
        builder.timeouts(timeouts)
    builder.polling(polling or PollingConfig(interval_seconds=0.01, max_wait_seconds=1.0))
    return builder.build()


# ------------------------------------------------------------------
# Sample EML builders
# ------------------------------------------------------------------


def _build_plain_email(
    *,
    subject: str = "Your verification code",
    body: str = "Hello, World!",
    message_id: str = "<test-001@example.com>",
) -> bytes:
    """Build a simple plain-text email as raw bytes."""
    msg = MIMEText(body, "plain")
    msg["Subject"] = subject
    msg["From"] = "no-reply@service.example"
    msg["To"] = "user@example.com"
    msg["Message-ID"] = message_id
    msg["Date"] = "Mon, 02 Jun 2025 12:00:00 +0000"
    return msg.as_bytes()


def _build_html_email(*, body_html: str = "<p>Hello</p>") -> bytes:
    msg = MIMEText(body_html, "html")
    msg["Subject"] = "HTML Email"
    msg["From"] = "no-reply@service.example"
    msg["To"] = "user@example.com"
    msg["Message-ID"] = "<html-001@example.com>"
    msg["Date"] = "Mon, 02 Jun 2025 12:00:00 +0000"
    return msg.as_bytes()


def _build_alternative_email(
    *,
    body_text: str = "Plain body",
    body_html: str = "<p>HTML body</p>",
    wrap_in_mixed: bool = False,
) -> bytes:
    """Build a text + HTML email, optionally nested inside multipart/mixed."""
    alt = MIMEMultipart("alternative")
    alt.attach(MIMEText(body_html, "html"))
    alt.attach(MIMEText(body_text, "plain"))

    msg = alt
    if wrap_in_mixed:
        msg = MIMEMultipart("mixed")
        msg.attach(alt)

    msg["Subject"] = "Multipart Email"
    msg["From"] = "no-reply@service.example"
    msg["To"] = "user@example.com"
    msg["Date"] = "Mon, 02 Jun 2025 12:00:00 +0000"
    return msg.as_bytes()


def _build_undecodable_email(body: str = "Your code is 424242") -> bytes:
    """A message whose declared charset Python has no codec for."""
    return (
        b"From: no-reply@service.example\r\n"
        b"Subject: Broken\r\n"
        b"Content-Type: text/plain; charset=x-no-such-charset\r\n"
        b"\r\n" + body.encode() + b"\r\n"
    )


@pytest.fixture
def plain_eml_bytes() -> bytes:
    return _build_plain_email()


@pytest.fixture
def otp_eml_bytes() -> bytes:
    return _build_plain_email(body="Your code is 123456. It expires in 10 minutes.")


# ------------------------------------------------------------------
# Fake IMAP server
# ------------------------------------------------------------------


class FakeMailbox:
    """Programmable stand-in for an imaplib connection.

    ``messages`` maps UID to raw bytes; ``since_uids`` is what a
    ``SINCE`` search returns (all UIDs by default).  Every SEARCH criteria
    and FETCH range is recorded in order.
    """

    def __init__(
        self,
        messages: dict[int, bytes] | None = None,
        *,
        since_uids: list[int] | None = None,
    ) -> None:
        self.messages = dict(messages or {})
        self.since_uids = since_uids
        self.searches: list[str] = []
        self.fetches: list[str] = []

    def uid(self, command: str, *args):
        if command == "SEARCH":
            criteria = args[-1]
            self.searches.append(criteria)
            if criteria.startswith("SINCE") and self.since_uids is not None:
                uids = self.since_uids
            else:
                uids = sorted(self.messages)
            return ("OK", [" ".join(str(u) for u in uids).encode()])
        if command == "FETCH":
            uid_range = args[0]
            self.fetches.append(uid_range)
            return ("OK", self._fetch_data(uid_range))
        return ("BAD", [b"unknown command"])

    def _fetch_data(self, uid_range: str) -> list:
        low, _, high = uid_range.partition(":")
        low_uid = int(low)
        high_uid = int(high) if high else low_uid
        data: list = []
        for seq, uid in enumerate(sorted(self.messages), start=1):
            if low_uid <= uid <= high_uid:
                raw = self.messages[uid]
                data.append((b"%d (UID %d BODY[] {%d}" % (seq, uid, len(raw)), raw))
                data.append(b")")
        return data or [None]

    def as_imap(self) -> MagicMock:
        mock = MagicMock()
        mock.login.return_value = ("OK", [b"Logged in"])
        mock.select.return_value = ("OK", [str(len(self.messages)).encode()])
        mock.noop.return_value = ("OK", [b""])
        mock.logout.return_value = ("BYE", [b"Logging out"])
        mock.uid.side_effect = self.uid
        return mock


def make_monitor(
    mailbox: FakeMailbox,
    config: ImapConfig,
    *,
    last_seen_uid: int = 0,
) -> tuple[MailboxMonitor, MagicMock]:
    """A monitor over *mailbox*, skipping the network connect stages."""
    imap = mailbox.as_imap()
    monitor = MailboxMonitor(ImapSession(imap), config, last_seen_uid=last_seen_uid)
    return monitor, imap


class CommandTracker:
    """Wraps imaplib mock methods to count commands running at the same time."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.active = 0
        self.peak = 0

    def wrap(self, func: Callable, *, delay: float = 0.0) -> Callable:
        def side_effect(*args, **kwargs):
            with self._lock:
                self.active += 1
                self.peak = max(self.peak, self.active)
            try:
                time.sleep(delay)
                return func(*args, **kwargs)
            finally:
                with self._lock:
                    self.active -= 1

        return side_effect

    def track(self, imap: MagicMock, *, slow_noop: float = 0.0) -> None:
        """Track every command on *imap*; NOOP optionally takes *slow_noop* seconds."""
        for name in ("login", "select", "noop", "uid", "logout"):
            method = getattr(imap, name)
            inner = method.side_effect or _returning(method.return_value)
            delay = slow_noop if name == "noop" else 0.0
            method.side_effect = self.wrap(inner, delay=delay)


def _returning(value):
    def side_effect(*args, **kwargs):
        return value

    return side_effect
