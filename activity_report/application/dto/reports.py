from __future__ import annotations

from dataclasses import dataclass

from activity_report.domain.activities import Activity


@dataclass(frozen=True)
class ImageUpload:
    filename: str
    content_type: str
    data: bytes


@dataclass(frozen=True)
class ReportForm:
    activity: Activity
    custom_activity_name: str | None
    date: str
    start_time: str
    end_time: str
    participant_count: int
    content: str | None = None
    external_link: str | None = None


@dataclass(frozen=True)
class DispatchedMessage:
    id: str
    channel_id: str
