from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, UploadFile

from activity_report.api.deps.auth import get_discord_client, require_authorization
from activity_report.api.schemas.posts import PostCreateResponse
from activity_report.application.dto.auth import SessionContext
from activity_report.application.dto.reports import ImageUpload
from activity_report.application.services.preview_service import LinkPreviewService
from activity_report.application.services.report_service import ReportService
from activity_report.infrastructure.discord.api_client import DiscordApiClient

router = APIRouter()


def get_preview_service() -> LinkPreviewService:
    return LinkPreviewService()


def get_report_service(
    discord_client: DiscordApiClient = Depends(get_discord_client),
    preview_service: LinkPreviewService = Depends(get_preview_service),
) -> ReportService:
    return ReportService(discord_client=discord_client, preview_service=preview_service)


@router.post("", response_model=PostCreateResponse)
async def create_post(
    activity_id: str | None = Form(default=None, alias="activityId"),
    custom_activity_name: str | None = Form(default=None, alias="customActivityName"),
    date: str | None = Form(default=None),
    time_start: str | None = Form(default=None, alias="timeStart"),
    time_end: str | None = Form(default=None, alias="timeEnd"),
    participants: str | None = Form(default=None),
    content: str | None = Form(default=None),
    x_post_url: str | None = Form(default=None, alias="xPostUrl"),
    image: UploadFile | None = File(default=None),
    context: SessionContext = Depends(require_authorization),
    service: ReportService = Depends(get_report_service),
):
    form = service.validate_form(
        activity_id=activity_id,
        custom_activity_name=custom_activity_name,
        date=date,
        start_time=time_start,
        end_time=time_end,
        participant_count=participants,
        content=content,
        external_link=x_post_url,
    )
    upload = await _read_image(image, service)
    message = await service.submit(form, context.identity, upload)
    return PostCreateResponse(message_id=message.id)


async def _read_image(image: UploadFile | None, service: ReportService) -> ImageUpload | None:
    if image is None:
        return None
    try:
        data = await image.read()
    finally:
        await image.close()
    return service.prepare_image(data=data, content_type=image.content_type)
