"""Tests for inbox_watch.matcher."""

from __future__ import annotations

import re

import pytest

from inbox_watch.errors import InvalidConfigError
from inbox_watch.matcher import ClosureMatcher, Matcher, OtpMatcher, RegexMatcher, UrlMatcher


class TestRegexMatcher:
    def test_returns_first_group(self):
        matcher = RegexMatcher(r"token=(\w+)")
        assert matcher.find_match("go to /verify?token=abc123&x=1") == "abc123"

    def test_whole_match_without_groups(self):
        matcher = RegexMatcher(r"[A-Z]{3}-\d{3}")
        assert matcher.find_match("ticket ABC-123 opened") == "ABC-123"

    def test_no_match(self):
        assert RegexMatcher(r"\d+").find_match("no digits") is None

    def test_default_description(self):
        assert RegexMatcher(r"\d+").description == r"regex pattern: \d+"

    def test_invalid_pattern_raises(self):
        with pytest.raises(re.error):
            RegexMatcher(r"([unclosed")


class TestOtpMatcher:
    def test_six_digit_matches(self):
        assert OtpMatcher.six_digit().find_match("Your code is 123456.") == "123456"

    def test_rejects_shorter(self):
        assert OtpMatcher.six_digit().find_match("Code: 12345") is None

    def test_rejects_longer(self):
        assert OtpMatcher.six_digit().find_match("Code: 1234567") is None

    def test_skips_long_number_then_finds_code(self):
        text = "Order 12345678 confirmed. Code: 654321"
        assert OtpMatcher.six_digit().find_match(text) == "654321"

    def test_letters_adjacent_are_fine(self):
        assert OtpMatcher.n_digit(4).find_match("PIN:4821!") == "4821"

    @pytest.mark.parametrize("digits", [1, 4, 6, 8])
    def test_exact_width_boundaries(self, digits: int):
        matcher = OtpMatcher.n_digit(digits)
        code = "7" * digits
        assert matcher.find_match(f"code {code} end") == code
        assert matcher.find_match(f"code {'7' * (digits + 1)} end") is None
        if digits > 1:
            assert matcher.find_match(f"code {'7' * (digits - 1)} end") is None

    def test_zero_digits_rejected(self):
        with pytest.raises(InvalidConfigError):
            OtpMatcher.n_digit(0)

    def test_description(self):
        assert OtpMatcher.n_digit(8).description == "8-digit OTP code"

    def test_custom_pattern(self):
        matcher = OtpMatcher.custom(r"code: ([A-Z0-9]{6})")
        assert matcher.find_match("Your code: X7K9P2") == "X7K9P2"
        assert matcher.description == "custom OTP pattern"


class TestUrlMatcher:
    HTML = '<a href="https://example.com/verify?token=abc123">Click</a>'

    def test_matches_domain_link(self):
        assert UrlMatcher("example.com").find_match(self.HTML) == (
            "https://example.com/verify?token=abc123"
        )

    def test_other_domain_no_match(self):
        assert UrlMatcher("other.com").find_match(self.HTML) is None

    def test_single_quotes_and_subdomain(self):
        html = "<a href='http://auth.example.com/confirm/42'>go</a>"
        assert UrlMatcher("example.com").find_match(html) == "http://auth.example.com/confirm/42"

    def test_domain_is_escaped(self):
        html = '<a href="https://exampleXcom/verify">bad</a>'
        assert UrlMatcher("example.com").find_match(html) is None

    def test_lookalike_host_rejected(self):
        html = '<a href="https://example.com.evil.net/verify">phish</a>'
        assert UrlMatcher("example.com").find_match(html) is None

    def test_first_matching_link_wins(self):
        html = (
            '<a href="https://tracker.net/x">t</a>'
            '<a href="https://example.com/first">1</a>'
            '<a href="https://example.com/second">2</a>'
        )
        assert UrlMatcher("example.com").find_match(html) == "https://example.com/first"

    def test_description_and_domain(self):
        matcher = UrlMatcher("example.com")
        assert matcher.description == "URL from example.com"
        assert matcher.domain == "example.com"

    def test_custom(self):
        matcher = UrlMatcher.custom(r"(https://app\.example\.com/reset/\w+)", "reset link")
        assert matcher.find_match("visit https://app.example.com/reset/abc now") == (
            "https://app.example.com/reset/abc"
        )
        assert matcher.description == "reset link"


class TestClosureMatcher:
    def test_delegates_to_function(self):
        def code_line(text: str) -> str | None:
            for line in text.splitlines():
                if line.startswith("Code:"):
                    return line.removeprefix("Code:").strip()
            return None

        matcher = ClosureMatcher(code_line, "code line extractor")
        assert matcher.find_match("Hello\nCode: AB-12\nBye") == "AB-12"
        assert matcher.find_match("nothing here") is None
        assert matcher.description == "code line extractor"

    def test_is_a_matcher(self):
        assert isinstance(ClosureMatcher(lambda t: None, "none"), Matcher)


class TestMatcherBase:
    def test_cannot_instantiate_abstract(self):
        with pytest.raises(TypeError):
            Matcher()  # type: ignore[abstract]

    def test_repr_includes_description(self):
        assert repr(OtpMatcher.six_digit()) == "OtpMatcher('6-digit OTP code')"

    def test_reusable_across_calls(self):
        matcher = OtpMatcher.six_digit()
        assert matcher.find_match("a 111111") == "111111"
        assert matcher.find_match("b 222222") == "222222"
        assert matcher.find_match("a 111111") == "111111"
