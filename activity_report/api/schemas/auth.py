from __future__ import annotations

from pydantic import BaseModel


class UserResponse(BaseModel):
    id: str
    username: str
    avatar: str | None = None
    discriminator: str | None = None
    global_name: str | None = None


class GuildResponse(BaseModel):
    id: str
    name: str
    icon: str | None = None


class AuthStatusResponse(BaseModel):
    authenticated: bool
    authorized: bool = False
    error: str | None = None
    user: UserResponse | None = None
