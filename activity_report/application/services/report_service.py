from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import datetime
from typing import Any, Final

from activity_report.application.dto.auth import Identity
from activity_report.application.dto.reports import DispatchedMessage, ImageUpload, ReportForm
from activity_report.application.services.preview_service import LinkPreviewService
from activity_report.core.config import BackendSettings, get_settings
from activity_report.core.errors import ApiException, validation_error
from activity_report.core.security import utc_now
from activity_report.domain.activities import get_activity_by_id
from activity_report.domain.dates import is_valid_date, is_valid_time
from activity_report.domain.embeds import (
    build_message_embeds,
    build_preview_embeds,
    compose_report_embed,
)
from activity_report.infrastructure.discord.api_client import DiscordApiClient, DiscordApiError

logger = logging.getLogger(__name__)

REPORT_MESSAGE_CONTENT: Final[str] = "新しい活動報告が投稿されました！"
ATTACHMENT_DESCRIPTION: Final[str] = "活動報告画像"
ALLOWED_IMAGE_TYPES: Final[frozenset[str]] = frozenset(
    {"image/jpeg", "image/png", "image/gif", "image/webp"}
)

_NON_NEGATIVE_INT_RE = re.compile(r"\d+", re.ASCII)


class ReportService:
    def __init__(
        self,
        *,
        settings: BackendSettings | None = None,
        discord_client: DiscordApiClient | None = None,
        preview_service: LinkPreviewService | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings or get_settings()
        self.discord_client = discord_client or DiscordApiClient.from_settings(self.settings)
        self.preview_service = preview_service or LinkPreviewService(settings=self.settings)
        self._clock = clock

    def validate_form(
        self,
        *,
        activity_id: str | None,
        custom_activity_name: str | None,
        date: str | None,
        start_time: str | None,
        end_time: str | None,
        participant_count: str | None,
        content: str | None = None,
        external_link: str | None = None,
    ) -> ReportForm:
        """Check the submitted fields in a fixed order and report the first failure."""
        activity = get_activity_by_id((activity_id or "").strip())
        if activity is None:
            raise validation_error("Valid activity is required")

        custom_name = (custom_activity_name or "").strip()
        if activity.is_custom and not custom_name:
            raise validation_error("Custom activity name is required")

        date = (date or "").strip()
        if not date:
            raise validation_error("Date is required")
        if not is_valid_date(date):
            raise validation_error("Date must be in YYYY-MM-DD format")

        start_time = (start_time or "").strip()
        if not start_time:
            raise validation_error("Start time is required")
        end_time = (end_time or "").strip()
        if not end_time:
            raise validation_error("End time is required")
        if not is_valid_time(start_time) or not is_valid_time(end_time):
            raise validation_error("Time must be in HH:mm format")

        raw_count = (participant_count or "").strip()
        if not _NON_NEGATIVE_INT_RE.fullmatch(raw_count):
            raise validation_error("Valid participant count is required")

        return ReportForm(
            activity=activity,
            custom_activity_name=custom_name if activity.is_custom else None,
            date=date,
            start_time=start_time,
            end_time=end_time,
            participant_count=int(raw_count),
            content=content,
            external_link=(external_link or "").strip() or None,
        )

    def prepare_image(self, *, data: bytes, content_type: str | None) -> ImageUpload | None:
        if not data:
            return None
        content_type = (content_type or "").lower()
        if content_type not in ALLOWED_IMAGE_TYPES:
            raise ApiException(
                status_code=400,
                error_code="INVALID_IMAGE_TYPE",
                message="画像形式が無効です。JPEG, PNG, GIF, WebP のみ対応しています",
            )
        if len(data) > self.settings.BACKEND_UPLOAD_MAX_BYTES:
            raise ApiException(
                status_code=400,
                error_code="IMAGE_TOO_LARGE",
                message="画像サイズは8MB以下にしてください",
            )
        timestamp_ms = int(self._clock().timestamp() * 1000)
        extension = content_type.split("/", 1)[1]
        return ImageUpload(
            filename=f"report_{timestamp_ms}.{extension}",
            content_type=content_type,
            data=data,
        )

    async def submit(
        self,
        form: ReportForm,
        author: Identity,
        image: ImageUpload | None = None,
    ) -> DispatchedMessage:
        channel_id = self.settings.DISCORD_POST_CHANNEL_ID
        if not channel_id:
            raise ApiException(
                status_code=500,
                error_code="POST_CHANNEL_MISSING",
                message="DISCORD_POST_CHANNEL_ID is not configured",
            )

        preview = None
        if form.external_link:
            preview = await self.preview_service.fetch_preview(form.external_link)

        report_embed = compose_report_embed(
            activity=form.activity,
            custom_activity_name=form.custom_activity_name,
            date=form.date,
            start_time=form.start_time,
            end_time=form.end_time,
            participant_count=form.participant_count,
            content=form.content,
            external_link=form.external_link,
            author_id=author.id,
            author_name=author.username,
            author_avatar=author.avatar,
            image_filename=image.filename if image else None,
            now=self._clock(),
        )
        payload = build_message_payload(
            build_message_embeds(report_embed, build_preview_embeds(preview)),
            image,
        )

        try:
            message = await self.discord_client.create_message(
                channel_id,
                payload,
                file=(image.filename, image.data, image.content_type) if image else None,
            )
        except DiscordApiError as exc:
            logger.error(
                "Failed to post activity report channel=%s user=%s: %s",
                channel_id,
                author.id,
                exc,
            )
            raise ApiException(
                status_code=500,
                error_code="DISCORD_POST_FAILED",
                message="Failed to post message",
            ) from exc

        logger.info(
            "Activity report posted message=%s activity=%s user=%s",
            message["id"],
            form.activity.id,
            author.id,
        )
        return DispatchedMessage(
            id=str(message["id"]),
            channel_id=str(message.get("channel_id") or channel_id),
        )


def build_message_payload(
    embeds: list[dict[str, Any]],
    image: ImageUpload | None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {"content": REPORT_MESSAGE_CONTENT, "embeds": embeds}
    if image is not None:
        payload["attachments"] = [
            {"id": 0, "filename": image.filename, "description": ATTACHMENT_DESCRIPTION}
        ]
    return payload
