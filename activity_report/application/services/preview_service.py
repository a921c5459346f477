from __future__ import annotations

import logging
from typing import Any

from activity_report.core.config import BackendSettings, get_settings
from activity_report.domain.dates import from_unix_seconds
from activity_report.domain.embeds import LinkPreviewMetadata, PreviewImage
from activity_report.domain.links import extract_status_id
from activity_report.infrastructure.link_preview.fxtwitter_client import (
    FxTwitterClient,
    LinkPreviewError,
)

logger = logging.getLogger(__name__)


class LinkPreviewService:
    """Best-effort preview of a linked X post; every failure means "no preview"."""

    def __init__(
        self,
        *,
        settings: BackendSettings | None = None,
        client: FxTwitterClient | None = None,
    ):
        self.settings = settings or get_settings()
        self.client = client or FxTwitterClient(
            api_base_url=self.settings.LINK_PREVIEW_API_BASE_URL,
            timeout_seconds=self.settings.LINK_PREVIEW_TIMEOUT_SECONDS,
        )

    async def fetch_preview(self, raw_url: str | None) -> LinkPreviewMetadata | None:
        status_id = extract_status_id(raw_url)
        if status_id is None:
            return None

        try:
            tweet = await self.client.fetch_status(status_id)
        except LinkPreviewError as exc:
            logger.warning("Link preview unavailable status_id=%s: %s", status_id, exc)
            return None

        try:
            metadata = map_tweet(tweet)
        except (AttributeError, KeyError, TypeError, ValueError, OverflowError, OSError):
            logger.warning("Link preview payload malformed status_id=%s", status_id, exc_info=True)
            return None
        return metadata if metadata.has_content else None


def map_tweet(tweet: dict[str, Any]) -> LinkPreviewMetadata:
    author = tweet.get("author") or {}
    created_timestamp = tweet.get("created_timestamp")
    return LinkPreviewMetadata(
        title=_author_title(author),
        description=tweet.get("text") or None,
        images=_photos(tweet),
        canonical_url=tweet.get("url") or None,
        author_avatar_url=author.get("avatar_url") or None,
        created_at=from_unix_seconds(created_timestamp) if created_timestamp else None,
    )


def _author_title(author: dict[str, Any]) -> str | None:
    name = author.get("name")
    screen_name = author.get("screen_name")
    if name and screen_name:
        return f"{name} (@{screen_name})"
    return name or None


def _photos(tweet: dict[str, Any]) -> tuple[PreviewImage, ...]:
    media = tweet.get("media") or {}
    photos = media.get("photos") or []
    return tuple(
        PreviewImage(url=photo["url"], alt_text=photo.get("altText") or None)
        for photo in photos
        if isinstance(photo, dict) and photo.get("url")
    )
