from __future__ import annotations

import re
from datetime import datetime, timezone

DATE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def is_valid_date(value: str) -> bool:
    return DATE_RE.match(value) is not None


def is_valid_time(value: str) -> bool:
    return TIME_RE.match(value) is not None


def format_date_time_range(date: str, start_time: str, end_time: str) -> str:
    """Render ``2024-01-15``, ``14:30``, ``16:00`` as ``2024年1月15日 14:30〜16:00``.

    Month and day lose their leading zeros; the times are kept exactly as
    submitted. No timezone conversion takes place.
    """
    year, month, day = date.split("-")
    start_hour, start_minute = start_time.split(":")
    end_hour, end_minute = end_time.split(":")
    return (
        f"{year}年{int(month)}月{int(day)}日 "
        f"{start_hour}:{start_minute}〜{end_hour}:{end_minute}"
    )


def to_iso_timestamp(moment: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a ``Z`` suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    utc_moment = moment.astimezone(timezone.utc)
    return utc_moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def from_unix_seconds(value: int | float) -> str:
    return to_iso_timestamp(datetime.fromtimestamp(value, tz=timezone.utc))
