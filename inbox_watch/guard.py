"""Lifecycle wrapper guaranteeing a single logout attempt."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from types import TracebackType

import structlog

from .errors import MailboxError
from .matcher import Matcher
from .monitor import MailboxMonitor

logger = structlog.get_logger()

# Strong references to logouts scheduled from __del__
_pending_logouts: set[asyncio.Task[None]] = set()


class MonitorGuard:
    """Owns a :class:`MailboxMonitor` until logout.

    Preferred use is as an async context manager; leaving the block logs
    out once, best effort::

        async with monitor.guard() as guard:
            link = await guard.find_recent_match(UrlMatcher("example.com"), 300)

    An explicit :meth:`logout` consumes the guard and surfaces the logout
    error, if any.  A guard that is garbage-collected while still holding
    its monitor schedules the logout on the running event loop, or just
    closes the socket when there is none.
    """

    def __init__(self, monitor: MailboxMonitor) -> None:
        self._monitor: MailboxMonitor | None = monitor

    @property
    def consumed(self) -> bool:
        return self._monitor is None

    def _live(self) -> MailboxMonitor:
        if self._monitor is None:
            raise RuntimeError("guard already consumed")
        return self._monitor

    @property
    def monitor(self) -> MailboxMonitor:
        return self._live()

    @property
    def email(self) -> str:
        return self._live().email

    async def wait_for_match(self, matcher: Matcher) -> str:
        return await self._live().wait_for_match(matcher)

    async def find_recent_match(self, matcher: Matcher, max_age: timedelta | float) -> str:
        return await self._live().find_recent_match(matcher, max_age)

    async def logout(self) -> None:
        monitor = self._live()
        self._monitor = None
        await monitor.logout()

    async def __aenter__(self) -> MonitorGuard:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        monitor, self._monitor = self._monitor, None
        if monitor is not None:
            await _best_effort_logout(monitor)

    def __del__(self) -> None:
        monitor = getattr(self, "_monitor", None)
        if monitor is None:
            return
        self._monitor = None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None and not loop.is_closed():
            task = loop.create_task(_best_effort_logout(monitor))
            _pending_logouts.add(task)
            task.add_done_callback(_pending_logouts.discard)
            return

        logger.warning(
            "monitor_guard_dropped_without_logout",
            email=monitor.email,
            hint="call 'await guard.logout()' or use 'async with monitor.guard()'",
        )
        monitor.close()


async def _best_effort_logout(monitor: MailboxMonitor) -> None:
    try:
        await monitor.logout()
    except MailboxError as exc:
        logger.warning("monitor_logout_failed", email=monitor.email, error=exc.to_dict())
    else:
        logger.debug("monitor_logged_out", email=monitor.email)
