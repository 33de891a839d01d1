"""Content matchers: extract one value (OTP, link, token) from message text.

A matcher is an immutable value with two members: :meth:`Matcher.find_match`
and :attr:`Matcher.description`.  Matchers never perform I/O and hold no
mutable state, so one instance can be reused across scans and monitors.

Usage::

    OtpMatcher.six_digit().find_match("Your code is 123456.")  # "123456"
    UrlMatcher("example.com").find_match('<a href="https://example.com/v">')
"""

from __future__ import annotations

import abc
import re
from collections.abc import Callable

from .errors import InvalidConfigError


class Matcher(abc.ABC):
    """Interface every matcher implements."""

    @abc.abstractmethod
    def find_match(self, text: str) -> str | None:
        """Return the extracted value from *text*, or None if absent."""
        ...

    @property
    @abc.abstractmethod
    def description(self) -> str:
        """Human-readable summary used in logs and error messages."""
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.description!r})"


class RegexMatcher(Matcher):
    """Return the first capture group of a regular expression.

    Patterns without a capture group yield the whole match.  An invalid
    pattern raises :class:`re.error` at construction.
    """

    def __init__(self, pattern: str, description: str | None = None) -> None:
        self._regex = re.compile(pattern)
        self._description = description or f"regex pattern: {pattern}"

    @property
    def pattern(self) -> str:
        return self._regex.pattern

    @property
    def description(self) -> str:
        return self._description

    def find_match(self, text: str) -> str | None:
        match = self._regex.search(text)
        if match is None:
            return None
        if self._regex.groups:
            return match.group(1)
        return match.group(0)


class OtpMatcher(Matcher):
    """Match a one-time code of a fixed number of digits.

    The digits must not touch other digits on either side, so a 7-digit
    number never satisfies a 6-digit matcher, while letters or punctuation
    next to the code are fine (``"code:123456."``).
    """

    def __init__(self, inner: RegexMatcher) -> None:
        self._inner = inner

    @classmethod
    def n_digit(cls, digits: int) -> OtpMatcher:
        if digits <= 0:
            raise InvalidConfigError("OTP digit count must be > 0")
        pattern = rf"(?<![0-9])([0-9]{{{digits}}})(?![0-9])"
        return cls(RegexMatcher(pattern, f"{digits}-digit OTP code"))

    @classmethod
    def six_digit(cls) -> OtpMatcher:
        return cls.n_digit(6)

    @classmethod
    def custom(cls, pattern: str) -> OtpMatcher:
        return cls(RegexMatcher(pattern, "custom OTP pattern"))

    @property
    def description(self) -> str:
        return self._inner.description

    def find_match(self, text: str) -> str | None:
        return self._inner.find_match(text)


class UrlMatcher(Matcher):
    """Match the first ``href`` link pointing at *domain* or a subdomain.

    The domain is escaped, so ``example.com`` never matches ``exampleXcom``.
    """

    def __init__(self, domain: str) -> None:
        self._domain = domain
        escaped = re.escape(domain)
        pattern = (
            r"""href\s*=\s*["']"""
            rf"""(https?://(?:[^"'\s/?#@]+\.)?{escaped}(?:[:/?#][^"'\s]*)?)"""
            r"""["']"""
        )
        self._inner = RegexMatcher(pattern, f"URL from {domain}")

    @classmethod
    def custom(cls, pattern: str, description: str) -> Matcher:
        return RegexMatcher(pattern, description)

    @property
    def domain(self) -> str:
        return self._domain

    @property
    def description(self) -> str:
        return self._inner.description

    def find_match(self, text: str) -> str | None:
        return self._inner.find_match(text)


class ClosureMatcher(Matcher):
    """Wrap an arbitrary pure function ``text -> str | None``.

    Useful for structured fields or heuristics a single regex can't express::

        def code_line(text: str) -> str | None:
            for line in text.splitlines():
                if line.startswith("Code:"):
                    return line.removeprefix("Code:").strip()
            return None

        ClosureMatcher(code_line, "code line extractor")
    """

    def __init__(self, fn: Callable[[str], str | None], description: str) -> None:
        self._fn = fn
        self._description = description

    @property
    def description(self) -> str:
        return self._description

    def find_match(self, text: str) -> str | None:
        return self._fn(text)
