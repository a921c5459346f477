from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ActivityResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    emoji: str | None = None
    is_custom: bool | None = Field(default=None, alias="isCustom")
