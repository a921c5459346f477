from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any


class AccessDeniedCode(str, Enum):
    NOT_IN_GUILD = "NOT_IN_GUILD"
    MEMBER_FETCH_FAILED = "MEMBER_FETCH_FAILED"
    NO_REQUIRED_ROLE = "NO_REQUIRED_ROLE"


@dataclass(frozen=True)
class GuildMembership:
    id: str
    name: str = ""
    icon: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "icon": self.icon}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> GuildMembership:
        return cls(
            id=str(payload["id"]),
            name=str(payload.get("name") or ""),
            icon=payload.get("icon"),
        )


@dataclass(frozen=True)
class Identity:
    """Discord user captured at OAuth completion and kept only in the session."""

    id: str
    username: str
    avatar: str | None = None
    discriminator: str | None = None
    global_name: str | None = None
    guilds: tuple[GuildMembership, ...] = ()
    access_token: str = field(default="", repr=False)
    refresh_token: str = field(default="", repr=False)

    def is_in_guild(self, guild_id: str) -> bool:
        return any(guild.id == str(guild_id) for guild in self.guilds)

    def find_guild(self, guild_id: str) -> GuildMembership | None:
        return next((guild for guild in self.guilds if guild.id == str(guild_id)), None)

    def public_payload(self) -> dict[str, Any]:
        """Profile fields safe to return to the browser: no tokens, no guild list."""
        return {
            "id": self.id,
            "username": self.username,
            "avatar": self.avatar,
            "discriminator": self.discriminator,
            "global_name": self.global_name,
        }

    def to_record(self) -> dict[str, Any]:
        return {
            **self.public_payload(),
            "guilds": [guild.to_payload() for guild in self.guilds],
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Identity:
        return cls(
            id=str(record["id"]),
            username=str(record.get("username") or ""),
            avatar=record.get("avatar"),
            discriminator=record.get("discriminator"),
            global_name=record.get("global_name"),
            guilds=tuple(GuildMembership.from_payload(item) for item in record.get("guilds") or ()),
            access_token=str(record.get("access_token") or ""),
            refresh_token=str(record.get("refresh_token") or ""),
        )


@dataclass(frozen=True)
class MemberInfo:
    nick: str | None
    roles: tuple[str, ...]

    def has_any_role(self, role_ids: frozenset[str]) -> bool:
        return any(role_id in role_ids for role_id in self.roles)

    def to_record(self) -> dict[str, Any]:
        return {"nick": self.nick, "roles": list(self.roles)}

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> MemberInfo:
        return cls(
            nick=record.get("nick"),
            roles=tuple(str(role_id) for role_id in record.get("roles") or ()),
        )


@dataclass(frozen=True)
class AuthorizationDecision:
    authorized: bool
    error: AccessDeniedCode | None
    member: MemberInfo | None
    timestamp: datetime

    def __post_init__(self) -> None:
        if self.authorized != (self.error is None):
            raise ValueError("an authorized decision carries no error and a denial carries one")

    @classmethod
    def allow(cls, member: MemberInfo, *, at: datetime) -> AuthorizationDecision:
        return cls(authorized=True, error=None, member=member, timestamp=at)

    @classmethod
    def deny(cls, error: AccessDeniedCode, *, at: datetime) -> AuthorizationDecision:
        return cls(authorized=False, error=error, member=None, timestamp=at)

    def is_fresh(self, now: datetime, ttl: timedelta) -> bool:
        return now - self.timestamp < ttl

    def to_record(self) -> dict[str, Any]:
        return {
            "authorized": self.authorized,
            "error": self.error.value if self.error else None,
            "member": self.member.to_record() if self.member else None,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> AuthorizationDecision:
        member = record.get("member")
        error = record.get("error")
        return cls(
            authorized=bool(record["authorized"]),
            error=AccessDeniedCode(error) if error else None,
            member=MemberInfo.from_record(member) if member else None,
            timestamp=datetime.fromisoformat(record["timestamp"]),
        )


@dataclass
class SessionContext:
    """Per-request view of one session: who is signed in and the cached decision."""

    session_id: str | None = None
    identity: Identity | None = None
    auth_cache: AuthorizationDecision | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.session_id is not None and self.identity is not None

    def to_record(self) -> dict[str, Any]:
        return {
            "identity": self.identity.to_record() if self.identity else None,
            "auth_cache": self.auth_cache.to_record() if self.auth_cache else None,
        }

    @classmethod
    def from_record(cls, session_id: str, record: dict[str, Any]) -> SessionContext:
        identity = record.get("identity")
        auth_cache = record.get("auth_cache")
        return cls(
            session_id=session_id,
            identity=Identity.from_record(identity) if identity else None,
            auth_cache=AuthorizationDecision.from_record(auth_cache) if auth_cache else None,
        )
