"""Body extraction and matching for a single fetched message.

Only enough MIME is walked to find some text to match against:
``text/plain`` first, then ``text/html``, otherwise the first subpart.
"""

from __future__ import annotations

import email
import email.policy
from dataclasses import dataclass
from email.message import Message
from enum import Enum

import structlog

from .errors import ExtractBodyError, ParseEmailError, ParseError
from .matcher import Matcher
from .session import FetchedMessage

logger = structlog.get_logger()


class ExtractKind(str, Enum):
    MATCH = "match"
    NO_MATCH = "no_match"
    PARSE_ERROR = "parse_error"


@dataclass(frozen=True)
class ExtractResult:
    """Outcome of matching one message.

    ``PARSE_ERROR`` means the message could not be read, which is not the
    same as it lacking the wanted content.
    """

    kind: ExtractKind
    value: str | None = None
    error: ParseError | None = None

    @classmethod
    def match(cls, value: str) -> ExtractResult:
        return cls(ExtractKind.MATCH, value=value)

    @classmethod
    def no_match(cls) -> ExtractResult:
        return cls(ExtractKind.NO_MATCH)

    @classmethod
    def parse_error(cls, error: ParseError) -> ExtractResult:
        return cls(ExtractKind.PARSE_ERROR, error=error)

    @property
    def is_match(self) -> bool:
        return self.kind is ExtractKind.MATCH


def _decode_part(part: Message) -> str:
    content = part.get_content()
    if isinstance(content, str):
        return content
    if isinstance(content, bytes):
        return content.decode("utf-8", errors="replace")
    if isinstance(content, Message):
        # message/rfc822 attachment
        return extract_body_text(content)
    return str(content)


def extract_body_text(msg: Message) -> str:
    """Return the text to match against for *msg*."""
    if not msg.is_multipart():
        return _decode_part(msg)

    parts = list(msg.iter_parts())
    for content_type in ("text/plain", "text/html"):
        for part in parts:
            if part.get_content_type() == content_type:
                return _decode_part(part)
    if parts:
        return extract_body_text(parts[0])
    return ""


def extract_match(message: FetchedMessage, matcher: Matcher) -> ExtractResult:
    """Decode *message* and apply *matcher* to its body text.

    Never raises for a malformed message; the failure is logged and
    reported as ``PARSE_ERROR`` so a scan can move on.
    """
    if message.raw_bytes is None:
        logger.debug("email_without_body", uid=message.uid)
        return ExtractResult.no_match()

    try:
        msg = email.message_from_bytes(message.raw_bytes, policy=email.policy.default)
    except Exception as exc:
        error = ParseEmailError(message.uid)
        error.__cause__ = exc
        logger.warning("email_parse_failed", uid=message.uid, error=str(exc))
        return ExtractResult.parse_error(error)

    try:
        text = extract_body_text(msg)
    except Exception as exc:
        error = ExtractBodyError(message.uid)
        error.__cause__ = exc
        logger.warning("email_body_extraction_failed", uid=message.uid, error=str(exc))
        return ExtractResult.parse_error(error)

    value = matcher.find_match(text)
    if value is None:
        logger.debug("email_no_match", uid=message.uid, matcher=matcher.description)
        return ExtractResult.no_match()

    logger.debug("email_matched", uid=message.uid, matcher=matcher.description)
    return ExtractResult.match(value)
