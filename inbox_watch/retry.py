"""Tenacity retry wrapper driven by RetryConfig and error retryability."""

from __future__ import annotations

from collections.abc import Callable

import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from .config import RetryConfig
from .errors import category_of, is_retryable

logger = structlog.get_logger()


def _log_before_sleep(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    category = category_of(exc) if exc else None
    logger.warning(
        "retrying_after_error",
        attempt=state.attempt_number,
        error=str(exc),
        category=category.value if category else None,
        sleep_seconds=state.next_action.sleep if state.next_action else None,
    )


def with_retry(
    config: RetryConfig | None = None,
    *,
    should_retry: Callable[[BaseException], bool] = is_retryable,
) -> Callable:
    """Return a tenacity retry decorator configured from *config*.

    Only errors for which *should_retry* is true are retried; anything else,
    including wait timeouts and not-found outcomes, propagates at once.

    Usage::

        @with_retry(RetryConfig(max_attempts=3))
        async def fetch_code() -> str:
            monitor = await MailboxMonitor.connect(config)
            async with monitor.guard() as guard:
                return await guard.find_recent_match(OtpMatcher.six_digit(), 300)
    """
    config = config or RetryConfig()
    return retry(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(
            multiplier=config.multiplier,
            min=config.initial_wait_seconds,
            max=config.max_wait_seconds,
        ),
        retry=retry_if_exception(should_retry),
        before_sleep=_log_before_sleep,
        reraise=True,
    )
