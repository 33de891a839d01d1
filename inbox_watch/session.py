"""Async IMAP session over stdlib imaplib, plus the staged session opener.

Blocking ``imaplib`` calls run in a worker thread via ``asyncio.to_thread()``.
Time limits are applied by the caller with :func:`bounded`; the session
itself only translates protocol outcomes into typed errors.
"""

from __future__ import annotations

import asyncio
import imaplib
import re
import socket
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date
from typing import TypeVar

import structlog

from .config import ImapConfig
from .connection import establish_tls_connection
from .errors import (
    AuthTimeoutError,
    ConnectTimeoutError,
    FetchError,
    FetchMessageError,
    LoginError,
    LogoutError,
    MailboxError,
    NoopError,
    SearchError,
    SelectMailboxError,
    SelectTimeoutError,
    TcpConnectError,
)

logger = structlog.get_logger()

T = TypeVar("T")

_UID_RE = re.compile(rb"\bUID (\d+)")

# BODY.PEEK leaves the \Seen flag untouched
FETCH_ITEMS = "(UID BODY.PEEK[])"


@dataclass(frozen=True)
class FetchedMessage:
    """Raw message data fetched from IMAP."""

    uid: int
    raw_bytes: bytes | None


async def bounded(
    awaitable: Awaitable[T],
    timeout: float,
    on_timeout: Callable[[], MailboxError],
) -> T:
    """Await *awaitable* for at most *timeout* seconds.

    Expiry raises the error built by *on_timeout*, chained to the
    underlying :class:`TimeoutError`.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except TimeoutError as exc:
        raise on_timeout() from exc


class _PreconnectedIMAP4(imaplib.IMAP4):
    """IMAP4 client that speaks over a socket the caller already set up.

    This lets the transport (direct or SOCKS5, then TLS) live in
    :mod:`inbox_watch.connection` while imaplib still handles the greeting.
    """

    def __init__(self, sock: socket.socket, host: str, port: int) -> None:
        self._preconnected = sock
        super().__init__(host, port)

    def _create_socket(self, timeout: float | None = None) -> socket.socket:
        return self._preconnected


def _mark_retrieved(task: asyncio.Task) -> None:
    # An abandoned command's outcome has no awaiting caller
    if not task.cancelled():
        task.exception()


def _uid_of(data: bytes) -> int | None:
    match = _UID_RE.search(data)
    return int(match.group(1)) if match else None


def parse_fetch_response(data: list, uid_range: str) -> list[FetchedMessage]:
    """Turn imaplib's ``UID FETCH`` payload into :class:`FetchedMessage` items.

    imaplib yields ``(header, literal)`` tuples for messages with a body,
    trailing ``b")"`` separators, and bare ``bytes`` for responses without
    a literal.  Some servers send ``UID n`` after the literal, in the
    trailing bytes item.
    """
    messages: list[FetchedMessage] = []
    pending: bytes | None = None

    for item in data:
        if isinstance(item, tuple):
            if pending is not None:
                raise FetchMessageError(uid_range)
            header, raw = item[0], item[1]
            uid = _uid_of(header)
            if uid is None:
                pending = raw
                continue
            messages.append(FetchedMessage(uid=uid, raw_bytes=raw))
        elif isinstance(item, bytes):
            uid = _uid_of(item)
            if pending is not None:
                if uid is None:
                    raise FetchMessageError(uid_range)
                messages.append(FetchedMessage(uid=uid, raw_bytes=pending))
                pending = None
            elif uid is not None:
                messages.append(FetchedMessage(uid=uid, raw_bytes=None))

    if pending is not None:
        raise FetchMessageError(uid_range)
    return messages


class ImapSession:
    """An authenticated-or-about-to-be IMAP connection to one mailbox.

    Each coroutine maps one IMAP command and raises the matching protocol
    error on a non-OK status or a library exception.

    A command abandoned by a timeout keeps running in its worker thread.
    The next command waits for it first, at most *drain_timeout* seconds,
    so two commands never share the socket.  If it is still running after
    that, the connection is closed and the new command fails.
    """

    def __init__(self, conn: imaplib.IMAP4, *, drain_timeout: float | None = None) -> None:
        self._conn = conn
        self._closed = False
        self._drain_timeout = drain_timeout
        self._inflight: asyncio.Task | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def busy(self) -> bool:
        """True while a worker thread is still running an earlier command."""
        return self._inflight is not None and not self._inflight.done()

    async def _call(self, func: Callable[..., T], *args) -> T:
        if self.busy:
            logger.debug("imap_waiting_for_abandoned_command", drain_timeout=self._drain_timeout)
            await asyncio.wait({self._inflight}, timeout=self._drain_timeout)
            if self.busy:
                self.close()
                raise OSError("connection still busy with an abandoned command")

        task = asyncio.create_task(asyncio.to_thread(func, *args))
        task.add_done_callback(_mark_retrieved)
        self._inflight = task
        # The shield keeps a caller's timeout from detaching the task
        return await asyncio.shield(task)

    async def login(self, email: str, password: str) -> None:
        try:
            status, _ = await self._call(self._conn.login, email, password)
        except (imaplib.IMAP4.error, OSError) as exc:
            raise LoginError(email) from exc
        if status != "OK":
            raise LoginError(email)
        logger.debug("imap_authenticated", email=email)

    async def select(self, mailbox: str) -> int:
        """Select *mailbox* and return its message count."""
        try:
            status, data = await self._call(self._conn.select, mailbox)
        except (imaplib.IMAP4.error, OSError) as exc:
            raise SelectMailboxError(mailbox) from exc
        if status != "OK":
            raise SelectMailboxError(mailbox)
        try:
            exists = int(data[0]) if data and data[0] else 0
        except ValueError:
            exists = 0
        logger.debug("imap_mailbox_selected", mailbox=mailbox, exists=exists)
        return exists

    async def noop(self) -> None:
        try:
            status, _ = await self._call(self._conn.noop)
        except (imaplib.IMAP4.error, OSError) as exc:
            raise NoopError() from exc
        if status != "OK":
            raise NoopError()

    async def uid_search(self, criteria: str) -> list[int]:
        try:
            status, data = await self._call(self._conn.uid, "SEARCH", None, criteria)
        except (imaplib.IMAP4.error, OSError) as exc:
            raise SearchError(criteria) from exc
        if status != "OK":
            raise SearchError(criteria)
        if not data or not data[0]:
            return []
        try:
            return [int(uid) for uid in data[0].split()]
        except ValueError as exc:
            raise SearchError(criteria) from exc

    async def uid_fetch(self, uid_range: str) -> list[FetchedMessage]:
        try:
            status, data = await self._call(
                self._conn.uid, "FETCH", uid_range, FETCH_ITEMS
            )
        except (imaplib.IMAP4.error, OSError) as exc:
            raise FetchError(uid_range) from exc
        if status != "OK":
            raise FetchError(uid_range)
        messages = parse_fetch_response(data or [], uid_range)
        logger.debug("imap_fetch_complete", uid_range=uid_range, fetched=len(messages))
        return messages

    async def latest_uid(self) -> int:
        """Refresh with NOOP, then return the highest UID in the mailbox (0 if empty)."""
        await self.noop()
        uids = await self.uid_search("ALL")
        latest = max(uids, default=0)
        logger.debug("imap_latest_uid", latest_uid=latest, uid_count=len(uids))
        return latest

    async def search_since(self, since: date) -> list[int]:
        """UIDs of messages received on or after *since* (day granularity)."""
        await self.noop()
        criteria = f"SINCE {since.strftime('%d-%b-%Y')}"
        uids = await self.uid_search(criteria)
        logger.debug("imap_search_since", criteria=criteria, uid_count=len(uids))
        return uids

    async def logout(self) -> None:
        try:
            status, _ = await self._call(self._conn.logout)
        except (imaplib.IMAP4.error, OSError) as exc:
            raise LogoutError() from exc
        # imaplib shuts the socket down once LOGOUT completes
        self._closed = True
        if status not in ("OK", "BYE"):
            raise LogoutError()

    def close(self) -> None:
        """Drop the connection without a protocol-level logout."""
        if self._closed:
            return
        self._closed = True
        try:
            self._conn.shutdown()
        except OSError as exc:
            logger.debug("imap_socket_close_failed", error=str(exc))


def _connect_sync(config: ImapConfig) -> ImapSession:
    host = config.effective_imap_host
    timeouts = config.timeouts
    sock = establish_tls_connection(
        host,
        config.port,
        proxy=config.proxy,
        timeout=timeouts.connect_seconds,
    )
    try:
        conn = _PreconnectedIMAP4(sock, host, config.port)
    except (imaplib.IMAP4.error, OSError) as exc:
        sock.close()
        raise TcpConnectError(config.server_address) from exc
    # Bounds any worker thread still blocked after a stage timeout fires
    sock.settimeout(timeouts.socket_seconds)
    return ImapSession(conn, drain_timeout=timeouts.socket_seconds)


def _close_late_session(task: asyncio.Task) -> None:
    if task.cancelled() or task.exception() is not None:
        return
    logger.debug("imap_late_connection_closed")
    task.result().close()


async def open_session(config: ImapConfig) -> ImapSession:
    """Connect, authenticate and select the mailbox, each under its own timeout.

    A failed or expired stage aborts the remaining ones and closes the
    connection, including one that completes after its stage timed out.
    """
    timeouts = config.timeouts
    target = config.server_address

    connect = asyncio.create_task(asyncio.to_thread(_connect_sync, config))
    try:
        session = await bounded(
            asyncio.shield(connect),
            timeouts.connect_seconds,
            lambda: ConnectTimeoutError(target, timeouts.connect_seconds),
        )
    except BaseException:
        connect.add_done_callback(_close_late_session)
        raise
    logger.debug("imap_connection_established", target=target, proxy_enabled=config.proxy is not None)

    try:
        await bounded(
            session.login(config.email, config.password.get_secret_value()),
            timeouts.auth_seconds,
            lambda: AuthTimeoutError(config.email, timeouts.auth_seconds),
        )
        await bounded(
            session.select(config.mailbox),
            timeouts.select_seconds,
            lambda: SelectTimeoutError(config.mailbox, timeouts.select_seconds),
        )
    except BaseException:
        session.close()
        raise
    return session
