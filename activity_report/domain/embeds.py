"""Discord embed values and the pure functions that assemble them.

An embed is built by folding a sequence of steps over an empty
:class:`OutboundEmbed`. Each step is ``OutboundEmbed -> OutboundEmbed`` and
returns a new value, so a half-built embed is never shared between requests.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import datetime
from functools import reduce
from typing import Any, Final

from activity_report.domain.activities import Activity
from activity_report.domain.dates import format_date_time_range, to_iso_timestamp
from activity_report.domain.links import normalize_link
from activity_report.domain.sanitize import (
    AUTHOR_NAME_LIMIT,
    DESCRIPTION_LIMIT,
    FIELD_VALUE_LIMIT,
    FOOTER_TEXT_LIMIT,
    TOTAL_LIMIT,
    sanitize_field_value,
    sanitize_title,
    truncate,
)

REPORT_COLOR: Final[int] = 0x5865F2
PREVIEW_COLOR: Final[int] = 0x1D9BF0

DATE_TIME_FIELD: Final[str] = "活動日時"
PARTICIPANTS_FIELD: Final[str] = "活動人数"
CONTENT_FIELD: Final[str] = "活動内容"
EXTERNAL_LINK_FIELD: Final[str] = "X (Twitter)"

DISCORD_CDN_BASE_URL: Final[str] = "https://cdn.discordapp.com"
DEFAULT_AVATAR_COUNT: Final[int] = 5


@dataclass(frozen=True)
class EmbedField:
    name: str
    value: str
    inline: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {"name": self.name, "value": self.value, "inline": self.inline}


@dataclass(frozen=True)
class EmbedAuthor:
    name: str
    icon_url: str | None = None
    url: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name}
        if self.icon_url:
            payload["icon_url"] = self.icon_url
        if self.url:
            payload["url"] = self.url
        return payload


@dataclass(frozen=True)
class EmbedFooter:
    text: str
    icon_url: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"text": self.text}
        if self.icon_url:
            payload["icon_url"] = self.icon_url
        return payload


@dataclass(frozen=True)
class OutboundEmbed:
    title: str | None = None
    url: str | None = None
    color: int | None = None
    description: str | None = None
    author: EmbedAuthor | None = None
    fields: tuple[EmbedField, ...] = ()
    footer: EmbedFooter | None = None
    timestamp: str | None = None
    image_url: str | None = None

    def with_field(self, field: EmbedField) -> OutboundEmbed:
        return replace(self, fields=(*self.fields, field))

    def to_payload(self) -> dict[str, Any]:
        """Serialize to Discord's embed JSON, leaving out anything unset."""
        payload: dict[str, Any] = {}
        if self.title is not None:
            payload["title"] = self.title
        if self.url is not None:
            payload["url"] = self.url
        if self.color is not None:
            payload["color"] = self.color
        if self.description is not None:
            payload["description"] = self.description
        if self.author is not None:
            payload["author"] = self.author.to_payload()
        if self.fields:
            payload["fields"] = [field.to_payload() for field in self.fields]
        if self.footer is not None:
            payload["footer"] = self.footer.to_payload()
        if self.timestamp is not None:
            payload["timestamp"] = self.timestamp
        if self.image_url is not None:
            payload["image"] = {"url": self.image_url}
        return payload


@dataclass(frozen=True)
class PreviewImage:
    url: str
    alt_text: str | None = None


@dataclass(frozen=True)
class LinkPreviewMetadata:
    title: str | None
    description: str | None
    images: tuple[PreviewImage, ...]
    canonical_url: str | None
    author_avatar_url: str | None = None
    created_at: str | None = None

    @property
    def has_content(self) -> bool:
        return bool(self.description) or bool(self.images)


EmbedStep = Callable[[OutboundEmbed], OutboundEmbed]


def compose(steps: Iterable[EmbedStep], initial: OutboundEmbed | None = None) -> OutboundEmbed:
    return reduce(lambda embed, step: step(embed), steps, initial or OutboundEmbed())


def discord_avatar_url(user_id: str, avatar_hash: str | None) -> str:
    if avatar_hash:
        return f"{DISCORD_CDN_BASE_URL}/avatars/{user_id}/{avatar_hash}.png"
    return f"{DISCORD_CDN_BASE_URL}/embed/avatars/{int(user_id) % DEFAULT_AVATAR_COUNT}.png"


def attachment_url(filename: str) -> str:
    return f"attachment://{filename}"


def activity_title(activity: Activity, custom_name: str | None = None) -> str:
    if activity.is_custom:
        return sanitize_title(custom_name) or activity.name
    if activity.emoji:
        return f"{activity.emoji} {activity.name}"
    return activity.name


def with_activity(activity: Activity, custom_name: str | None = None) -> EmbedStep:
    title = activity_title(activity, custom_name)
    return lambda embed: replace(embed, title=title)


def with_date_time(date: str, start_time: str, end_time: str) -> EmbedStep:
    field = EmbedField(
        name=DATE_TIME_FIELD,
        value=format_date_time_range(date, start_time, end_time),
        inline=True,
    )
    return lambda embed: embed.with_field(field)


def with_participants(count: int) -> EmbedStep:
    field = EmbedField(name=PARTICIPANTS_FIELD, value=f"{count}名", inline=True)
    return lambda embed: embed.with_field(field)


def with_content(content: str | None) -> EmbedStep:
    stripped = (content or "").strip()
    if not stripped:
        return _unchanged
    field = EmbedField(name=CONTENT_FIELD, value=sanitize_field_value(stripped), inline=False)
    return lambda embed: embed.with_field(field)


def with_external_link(url: str | None) -> EmbedStep:
    normalized = normalize_link(url)
    # A cut URL would point somewhere else, so an oversized one is left out.
    if normalized is None or len(normalized) > FIELD_VALUE_LIMIT:
        return _unchanged
    field = EmbedField(name=EXTERNAL_LINK_FIELD, value=normalized, inline=False)
    return lambda embed: embed.with_field(field)


def with_image(filename: str | None) -> EmbedStep:
    if not filename:
        return _unchanged
    return lambda embed: replace(embed, image_url=attachment_url(filename))


def with_author_footer(name: str, icon_url: str | None) -> EmbedStep:
    footer = EmbedFooter(text=truncate(name, FOOTER_TEXT_LIMIT) or "", icon_url=icon_url)
    return lambda embed: replace(embed, footer=footer)


def _unchanged(embed: OutboundEmbed) -> OutboundEmbed:
    return embed


def compose_report_embed(
    *,
    activity: Activity,
    custom_activity_name: str | None,
    date: str,
    start_time: str,
    end_time: str,
    participant_count: int,
    content: str | None,
    external_link: str | None,
    author_id: str,
    author_name: str,
    author_avatar: str | None,
    image_filename: str | None,
    now: datetime,
) -> OutboundEmbed:
    return compose(
        [
            with_activity(activity, custom_activity_name),
            with_date_time(date, start_time, end_time),
            with_participants(participant_count),
            with_content(content),
            with_external_link(external_link),
            with_image(image_filename),
            with_author_footer(author_name, discord_avatar_url(author_id, author_avatar)),
        ],
        OutboundEmbed(color=REPORT_COLOR, timestamp=to_iso_timestamp(now)),
    )


def build_preview_embeds(metadata: LinkPreviewMetadata | None) -> list[OutboundEmbed] | None:
    """Turn post metadata into a Discord gallery.

    The first embed carries the author, text, timestamp and first image. Each
    further image gets its own embed with the same ``url``; Discord groups
    embeds sharing a URL into one gallery, so order and URL must match.
    """
    if metadata is None or not metadata.has_content:
        return None

    author = None
    if metadata.title:
        author = EmbedAuthor(
            name=truncate(metadata.title, AUTHOR_NAME_LIMIT),
            icon_url=metadata.author_avatar_url,
            url=metadata.canonical_url,
        )
    images = metadata.images
    first = OutboundEmbed(
        url=metadata.canonical_url,
        color=PREVIEW_COLOR,
        description=truncate(metadata.description, DESCRIPTION_LIMIT) or None,
        author=author,
        timestamp=metadata.created_at,
        image_url=images[0].url if images else None,
    )
    gallery = [
        OutboundEmbed(url=metadata.canonical_url, color=PREVIEW_COLOR, image_url=image.url)
        for image in images[1:]
    ]
    return [first, *gallery]


def embed_text_length(embed: OutboundEmbed) -> int:
    """Characters Discord counts towards the per-message embed total."""
    length = len(embed.title or "") + len(embed.description or "")
    if embed.author is not None:
        length += len(embed.author.name)
    if embed.footer is not None:
        length += len(embed.footer.text)
    return length + sum(len(field.name) + len(field.value) for field in embed.fields)


def fit_preview_embeds(
    report_embed: OutboundEmbed,
    preview_embeds: list[OutboundEmbed] | None,
    limit: int = TOTAL_LIMIT,
) -> list[OutboundEmbed] | None:
    """Shrink the preview so the whole message stays within ``limit`` characters.

    The report is never touched. The preview description is shortened first,
    then dropped; if the preview still does not fit it is left out entirely.
    Gallery embeds carry no text and are kept with the first one.
    """
    if not preview_embeds:
        return preview_embeds
    first, *gallery = preview_embeds
    budget = limit - embed_text_length(report_embed)
    overflow = embed_text_length(first) - budget
    if overflow <= 0:
        return preview_embeds

    description = first.description or ""
    allowed = len(description) - overflow
    first = replace(first, description=truncate(description, allowed) if allowed > 0 else None)
    if embed_text_length(first) > budget:
        return None
    if first.description is None and first.image_url is None:
        return None
    return [first, *gallery]


def build_message_embeds(
    report_embed: OutboundEmbed,
    preview_embeds: list[OutboundEmbed] | None,
) -> list[dict[str, Any]]:
    fitted = fit_preview_embeds(report_embed, preview_embeds)
    return [embed.to_payload() for embed in (report_embed, *(fitted or ()))]
