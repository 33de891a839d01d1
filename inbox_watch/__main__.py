"""Command-line entry point.

Usage::

    python -m inbox_watch wait --digits 6            # wait for a new OTP
    python -m inbox_watch recent --url-domain example.com --max-age 600

Credentials and tuning come from the environment (``IMAP_EMAIL``,
``IMAP_PASSWORD``, ``IMAP_HOST``, ``IMAP_POLL_MAX_WAIT_SECONDS``, ...).
The extracted value is printed on stdout.  Exit status: 0 found, 1 not
found or wait timed out, 2 any other error.
"""

from __future__ import annotations

import argparse
import asyncio
import re
import sys

import structlog
from pydantic import ValidationError

from .config import ImapConfig, RetryConfig
from .errors import MailboxError, NoMatchError, WaitTimeoutError
from .logging import setup_logging
from .matcher import Matcher, OtpMatcher, RegexMatcher, UrlMatcher
from .monitor import MailboxMonitor
from .proxy import Socks5Proxy
from .retry import with_retry

logger = structlog.get_logger()

EXIT_FOUND = 0
EXIT_NOT_FOUND = 1
EXIT_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="inbox_watch", description=__doc__.splitlines()[0])
    parser.add_argument("mode", choices=("wait", "recent"))

    match = parser.add_mutually_exclusive_group()
    match.add_argument("--digits", type=int, help="match an OTP of N digits (default 6)")
    match.add_argument("--pattern", help="match a regex; the first group is printed")
    match.add_argument("--url-domain", help="match the first link to this domain")

    parser.add_argument(
        "--max-age",
        type=float,
        default=300.0,
        help="recent mode: seconds of history to scan (default 300)",
    )
    parser.add_argument("--host", help="IMAP host, overriding discovery")
    parser.add_argument("--proxy", help="socks5://[user:pass@]host[:port]")
    parser.add_argument(
        "--retries",
        type=int,
        default=1,
        help="attempts for transient failures (default 1, no retry)",
    )
    parser.add_argument("--json-logs", action="store_true", help="emit JSON log lines")
    parser.add_argument("--log-level", default="WARNING")
    return parser


def build_matcher(args: argparse.Namespace) -> Matcher:
    if args.pattern:
        return RegexMatcher(args.pattern)
    if args.url_domain:
        return UrlMatcher(args.url_domain)
    return OtpMatcher.n_digit(args.digits if args.digits is not None else 6)


def load_config(args: argparse.Namespace) -> ImapConfig:
    config = ImapConfig()
    updates: dict[str, object] = {}
    if args.host:
        updates["host"] = args.host
    if args.proxy:
        updates["proxy"] = Socks5Proxy.from_url(args.proxy)
    return config.model_copy(update=updates) if updates else config


async def run(args: argparse.Namespace) -> str:
    config = load_config(args)
    matcher = build_matcher(args)

    @with_retry(RetryConfig(max_attempts=max(args.retries, 1)))
    async def attempt() -> str:
        monitor = await MailboxMonitor.connect(config)
        async with monitor.guard() as guard:
            if args.mode == "wait":
                return await guard.wait_for_match(matcher)
            return await guard.find_recent_match(matcher, args.max_age)

    return await attempt()


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    setup_logging(json=args.json_logs, level=args.log_level)

    try:
        value = asyncio.run(run(args))
    except (NoMatchError, WaitTimeoutError) as exc:
        logger.info("no_match", reason=exc.kind)
        print(exc.message, file=sys.stderr)
        sys.exit(EXIT_NOT_FOUND)
    except ValidationError as exc:
        print(f"invalid configuration: {exc}", file=sys.stderr)
        sys.exit(EXIT_ERROR)
    except MailboxError as exc:
        logger.error("command_failed", error=exc.to_dict())
        print(exc.message, file=sys.stderr)
        sys.exit(EXIT_ERROR)
    except re.error as exc:
        print(f"invalid --pattern: {exc}", file=sys.stderr)
        sys.exit(EXIT_ERROR)

    print(value)
    sys.exit(EXIT_FOUND)


if __name__ == "__main__":
    main()
