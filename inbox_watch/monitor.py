"""Mailbox monitor: the polling and search engine on top of an IMAP session."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable
from datetime import UTC, date, datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from .config import ImapConfig
from .errors import (
    FetchTimeoutError,
    InvalidConfigError,
    LogoutTimeoutError,
    NoMatchError,
    UidFetchTimeoutError,
    WaitTimeoutError,
)
from .matcher import Matcher
from .parser import ExtractKind, extract_match
from .session import FetchedMessage, ImapSession, bounded, open_session

if TYPE_CHECKING:
    from .guard import MonitorGuard

logger = structlog.get_logger()

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def since_date(max_age: timedelta, now: datetime | None = None) -> date:
    """Cutoff date for an IMAP ``SINCE`` search covering the last *max_age*.

    IMAP dates have day resolution, so the search may return somewhat older
    messages than *max_age* allows.
    """
    now = now or datetime.now(UTC)
    try:
        cutoff = now - max_age
    except OverflowError:
        cutoff = _EPOCH
    return max(cutoff, _EPOCH).date()


class MailboxMonitor:
    """Watches one mailbox and extracts values from incoming mail.

    Tracks ``last_seen_uid``, the highest UID already scanned, so each
    message is inspected at most once by :meth:`wait_for_match`.  A monitor
    is driven by one task at a time.

    Usage::

        monitor = await MailboxMonitor.connect(config)
        async with monitor.guard() as guard:
            code = await guard.wait_for_match(OtpMatcher.six_digit())
    """

    def __init__(self, session: ImapSession, config: ImapConfig, *, last_seen_uid: int = 0) -> None:
        self._session = session
        self._config = config
        self._last_seen_uid = last_seen_uid
        self._log = logger.bind(email=config.email, imap_host=config.effective_imap_host)

    @classmethod
    async def connect(cls, config: ImapConfig) -> MailboxMonitor:
        """Open a session and record the current latest UID as the baseline."""
        session = await open_session(config)
        timeout = config.timeouts.uid_fetch_seconds
        try:
            start_uid = await bounded(
                session.latest_uid(),
                timeout,
                lambda: UidFetchTimeoutError(timeout),
            )
        except BaseException:
            session.close()
            raise

        logger.info(
            "imap_connected",
            email=config.email,
            imap_host=config.effective_imap_host,
            mailbox=config.mailbox,
            proxy_enabled=config.proxy is not None,
            last_seen_uid=start_uid,
        )
        return cls(session, config, last_seen_uid=start_uid)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def config(self) -> ImapConfig:
        return self._config

    @property
    def email(self) -> str:
        return self._config.email

    @property
    def imap_host(self) -> str:
        return self._config.effective_imap_host

    @property
    def last_seen_uid(self) -> int:
        return self._last_seen_uid

    @property
    def closed(self) -> bool:
        return self._session.closed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_latest_uid(self) -> int:
        timeout = self._config.timeouts.uid_fetch_seconds
        return await bounded(
            self._session.latest_uid(),
            timeout,
            lambda: UidFetchTimeoutError(timeout),
        )

    async def wait_for_match(self, matcher: Matcher) -> str:
        """Poll until a new message yields a match or the wait budget runs out.

        Raises :class:`WaitTimeoutError` once ``polling.max_wait_seconds``
        has elapsed; with a zero budget no poll is attempted at all.
        """
        polling = self._config.polling
        max_wait = polling.max_wait_seconds
        deadline = time.monotonic() + max_wait
        log = self._log.bind(matcher=matcher.description)
        log.debug("wait_for_match_started", max_wait_seconds=max_wait)

        while True:
            if max_wait <= 0 or time.monotonic() > deadline:
                log.info("wait_for_match_timeout", max_wait_seconds=max_wait)
                raise WaitTimeoutError(max_wait)

            value = await self._check_new_messages(matcher)
            if value is not None:
                log.info("wait_for_match_found", last_seen_uid=self._last_seen_uid)
                return value

            await asyncio.sleep(polling.interval_seconds)

    async def find_recent_match(self, matcher: Matcher, max_age: timedelta | float) -> str:
        """Scan messages from the last *max_age*, newest first.

        *max_age* is a :class:`~datetime.timedelta` or a number of seconds.
        Raises :class:`NoMatchError` if nothing matches.  Does not affect
        ``last_seen_uid``.
        """
        if not isinstance(max_age, timedelta):
            max_age = timedelta(seconds=max_age)
        if max_age < timedelta(0):
            raise InvalidConfigError("max_age must not be negative")

        since = since_date(max_age)
        timeout = self._config.timeouts.uid_fetch_seconds
        uids = await bounded(
            self._session.search_since(since),
            timeout,
            lambda: UidFetchTimeoutError(timeout),
        )
        log = self._log.bind(matcher=matcher.description, since=since.isoformat())
        if not uids:
            log.info("find_recent_match_empty")
            raise NoMatchError()

        for uid in sorted(set(uids), reverse=True):
            messages = await self._fetch(str(uid))
            value = self._scan(messages, matcher)
            if value is not None:
                log.info("find_recent_match_found", uid=uid)
                return value

        log.info("find_recent_match_exhausted", scanned=len(uids))
        raise NoMatchError()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def logout(self) -> None:
        """Log out, bounded by ``timeouts.logout_seconds``.

        The connection is closed afterwards whatever the outcome.
        """
        timeout = self._config.timeouts.logout_seconds
        try:
            await bounded(
                self._session.logout(),
                timeout,
                lambda: LogoutTimeoutError(timeout),
            )
        finally:
            self._session.close()
        self._log.info("imap_disconnected")

    def close(self) -> None:
        """Close the socket without logging out."""
        self._session.close()

    def guard(self) -> MonitorGuard:
        from .guard import MonitorGuard

        return MonitorGuard(self)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _check_new_messages(self, matcher: Matcher) -> str | None:
        latest = await self.get_latest_uid()
        if latest <= self._last_seen_uid:
            return None

        uid_range = f"{self._last_seen_uid + 1}:{latest}"
        self._log.debug("imap_new_messages", uid_range=uid_range)
        messages = await self._fetch(uid_range)

        # Servers may echo UIDs outside the requested range
        fresh = sorted(
            (m for m in messages if self._last_seen_uid < m.uid <= latest),
            key=lambda m: m.uid,
        )
        value = self._scan(fresh, matcher)
        self._last_seen_uid = latest
        self._log.debug("imap_poll_complete", fetched=len(fresh), last_seen_uid=latest)
        return value

    async def _fetch(self, uid_range: str) -> list[FetchedMessage]:
        timeout = self._config.timeouts.message_fetch_seconds
        return await bounded(
            self._session.uid_fetch(uid_range),
            timeout,
            lambda: FetchTimeoutError(uid_range, timeout),
        )

    @staticmethod
    def _scan(messages: Iterable[FetchedMessage], matcher: Matcher) -> str | None:
        for message in messages:
            result = extract_match(message, matcher)
            if result.kind is ExtractKind.MATCH:
                return result.value
        return None

    def __repr__(self) -> str:
        return (
            f"MailboxMonitor(email={self.email!r}, imap_host={self.imap_host!r}, "
            f"last_seen_uid={self._last_seen_uid})"
        )
