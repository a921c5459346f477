from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any


@dataclass(frozen=True)
class Activity:
    id: str
    name: str
    emoji: str | None = None
    is_custom: bool = False

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": self.id, "name": self.name}
        if self.emoji:
            payload["emoji"] = self.emoji
        if self.is_custom:
            payload["isCustom"] = True
        return payload


ACTIVITIES: tuple[Activity, ...] = (
    Activity(id="muscle", name="筋トレ部", emoji="🏋️"),
    Activity(id="running", name="ランニング部", emoji="🏃"),
    Activity(id="mountain", name="登山部", emoji="🏔️"),
    Activity(id="history", name="歴史アドベンチャー部", emoji="📜"),
    Activity(id="mahjong", name="麻雀部", emoji="🀄"),
    # The only free-text entry: submitters must name the activity themselves.
    Activity(id="other", name="その他", emoji="📝", is_custom=True),
)

_ACTIVITIES_BY_ID = MappingProxyType({activity.id: activity for activity in ACTIVITIES})


def get_activities() -> tuple[Activity, ...]:
    return ACTIVITIES


def get_activity_by_id(activity_id: str | None) -> Activity | None:
    if not activity_id:
        return None
    return _ACTIVITIES_BY_ID.get(activity_id)


def is_valid_activity_id(activity_id: str | None) -> bool:
    return get_activity_by_id(activity_id) is not None
