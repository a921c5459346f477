"""Escaping and length limits for text placed into Discord embeds."""

from __future__ import annotations

import re
from typing import Final

ZERO_WIDTH_SPACE: Final[str] = "\u200b"
ELLIPSIS: Final[str] = "…"

TITLE_LIMIT: Final[int] = 256
DESCRIPTION_LIMIT: Final[int] = 4096
FIELD_NAME_LIMIT: Final[int] = 256
FIELD_VALUE_LIMIT: Final[int] = 1024
FOOTER_TEXT_LIMIT: Final[int] = 2048
AUTHOR_NAME_LIMIT: Final[int] = 256
TOTAL_LIMIT: Final[int] = 6000

_EVERYONE_HERE_RE = re.compile(r"@(everyone|here)", re.IGNORECASE)
_USER_MENTION_RE = re.compile(r"<@(!?\d+)>")
_ROLE_MENTION_RE = re.compile(r"<@&(\d+)>")
_MARKDOWN_RE = re.compile(r"([*_~`|\\>#])")


def escape_mentions(text: str | None) -> str | None:
    """Break ``@everyone``, ``@here``, user and role mentions with a zero-width space.

    The visible text stays the same; Discord just no longer pings anyone.
    """
    if not text:
        return text
    escaped = _EVERYONE_HERE_RE.sub(rf"@{ZERO_WIDTH_SPACE}\1", text)
    escaped = _USER_MENTION_RE.sub(rf"<@{ZERO_WIDTH_SPACE}\1>", escaped)
    return _ROLE_MENTION_RE.sub(rf"<@{ZERO_WIDTH_SPACE}&\1>", escaped)


def escape_markdown(text: str | None) -> str | None:
    if not text:
        return text
    return _MARKDOWN_RE.sub(r"\\\1", text)


def truncate(text: str | None, max_length: int) -> str | None:
    if not text or len(text) <= max_length:
        return text
    return text[: max_length - 1] + ELLIPSIS


def sanitize_title(text: str | None) -> str | None:
    if not text:
        return text
    return truncate(escape_markdown(escape_mentions(text)), TITLE_LIMIT)


def sanitize_field_value(text: str | None) -> str | None:
    # Markdown is left alone here: report authors format their notes on purpose.
    if not text:
        return text
    return truncate(escape_mentions(text), FIELD_VALUE_LIMIT)
