"""Tests for the inbox_watch command-line entry point."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from inbox_watch.__main__ import (
    EXIT_ERROR,
    EXIT_FOUND,
    EXIT_NOT_FOUND,
    build_matcher,
    build_parser,
    load_config,
    main,
)
from inbox_watch.config import PollingConfig
from inbox_watch.errors import TcpConnectError
from inbox_watch.matcher import OtpMatcher, RegexMatcher, UrlMatcher
from tests.conftest import FakeMailbox, _build_plain_email, make_config, make_monitor


@pytest.fixture
def imap_env(monkeypatch):
    monkeypatch.setenv("IMAP_EMAIL", "user@example.com")
    monkeypatch.setenv("IMAP_PASSWORD", "secret")
    monkeypatch.setenv("IMAP_HOST", "imap.test.com")


def _run(argv: list[str], monitor=None, connect_error: Exception | None = None) -> int:
    connect = AsyncMock(return_value=monitor, side_effect=connect_error)
    with (
        patch("inbox_watch.__main__.setup_logging"),
        patch("inbox_watch.__main__.MailboxMonitor.connect", new=connect),
    ):
        with pytest.raises(SystemExit) as excinfo:
            main(argv)
    return excinfo.value.code


class TestBuildMatcher:
    def test_default_is_six_digit_otp(self):
        matcher = build_matcher(build_parser().parse_args(["wait"]))
        assert isinstance(matcher, OtpMatcher)
        assert matcher.description == "6-digit OTP code"

    def test_digits(self):
        matcher = build_matcher(build_parser().parse_args(["wait", "--digits", "8"]))
        assert matcher.description == "8-digit OTP code"

    def test_pattern(self):
        matcher = build_matcher(build_parser().parse_args(["recent", "--pattern", r"id=(\w+)"]))
        assert isinstance(matcher, RegexMatcher)

    def test_url_domain(self):
        matcher = build_matcher(build_parser().parse_args(["recent", "--url-domain", "example.com"]))
        assert isinstance(matcher, UrlMatcher)

    def test_matcher_options_are_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["wait", "--digits", "6", "--url-domain", "x.com"])


class TestLoadConfig:
    def test_from_env_with_overrides(self, imap_env):
        args = build_parser().parse_args(
            ["wait", "--host", "imap.other.test", "--proxy", "socks5://u:p@10.0.0.1:1081"]
        )
        config = load_config(args)
        assert config.effective_imap_host == "imap.other.test"
        assert config.proxy.address == "10.0.0.1:1081"
        assert config.proxy.username == "u"


class TestMain:
    def test_recent_found(self, imap_env, capsys):
        mailbox = FakeMailbox({1: _build_plain_email(body="code 135790")})
        monitor, imap = make_monitor(mailbox, make_config())

        assert _run(["recent", "--max-age", "600"], monitor) == EXIT_FOUND
        assert capsys.readouterr().out.strip().splitlines()[-1] == "135790"
        imap.logout.assert_called_once()

    def test_recent_not_found(self, imap_env):
        monitor, _ = make_monitor(FakeMailbox(since_uids=[]), make_config())
        assert _run(["recent"], monitor) == EXIT_NOT_FOUND

    def test_wait_timeout(self, imap_env):
        config = make_config(polling=PollingConfig(interval_seconds=0.01, max_wait_seconds=0))
        monitor, _ = make_monitor(FakeMailbox(), config)
        assert _run(["wait"], monitor) == EXIT_NOT_FOUND

    def test_connect_failure(self, imap_env, capsys):
        code = _run(["wait"], connect_error=TcpConnectError("imap.test.com:993"))
        assert code == EXIT_ERROR
        assert "failed to connect" in capsys.readouterr().err

    def test_missing_credentials(self, monkeypatch):
        monkeypatch.delenv("IMAP_EMAIL", raising=False)
        monkeypatch.delenv("IMAP_PASSWORD", raising=False)
        assert _run(["wait"]) == EXIT_ERROR

    @pytest.mark.parametrize("proxy", ["socks5://proxy.example:notaport", "socks5://proxy.example:99999"])
    def test_invalid_proxy_port(self, imap_env, capsys, proxy: str):
        assert _run(["recent", "--proxy", proxy]) == EXIT_ERROR
        assert "invalid proxy port" in capsys.readouterr().err

    def test_invalid_pattern(self, imap_env):
        assert _run(["recent", "--pattern", "([bad"]) == EXIT_ERROR
