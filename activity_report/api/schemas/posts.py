from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class PostCreateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message_id: str = Field(alias="messageId")
