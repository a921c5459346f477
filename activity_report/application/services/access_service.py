from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from activity_report.application.dto.auth import (
    AccessDeniedCode,
    AuthorizationDecision,
    Identity,
    MemberInfo,
    SessionContext,
)
from activity_report.core.config import BackendSettings, get_settings
from activity_report.core.security import utc_now
from activity_report.infrastructure.discord.api_client import DiscordApiClient, DiscordApiError
from activity_report.infrastructure.session.store import SessionStore

logger = logging.getLogger(__name__)


class AccessControlService:
    """Decides whether a signed-in member may use the API.

    Access requires membership of the configured guild and at least one of the
    allowed roles. Each decision, including a denial, is cached on the session
    for the freshness window, so a revoked role keeps working (or a newly
    granted one keeps failing) until the window lapses.
    """

    def __init__(
        self,
        *,
        session_store: SessionStore,
        settings: BackendSettings | None = None,
        discord_client: DiscordApiClient | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings or get_settings()
        self.session_store = session_store
        self.discord_client = discord_client or DiscordApiClient.from_settings(self.settings)
        self._clock = clock

    @property
    def freshness_window(self) -> timedelta:
        return timedelta(seconds=self.settings.BACKEND_AUTH_CACHE_TTL_SECONDS)

    async def evaluate(self, context: SessionContext) -> AuthorizationDecision:
        if context.identity is None:
            raise ValueError("evaluate requires an authenticated session")

        cached = context.auth_cache
        if cached is not None and cached.is_fresh(self._clock(), self.freshness_window):
            return cached

        decision = await self.check_access(context.identity)
        context.auth_cache = decision
        await self._persist(context)
        return decision

    async def check_access(self, identity: Identity) -> AuthorizationDecision:
        guild_id = self.settings.DISCORD_ALLOWED_GUILD_ID
        if not guild_id or not identity.is_in_guild(guild_id):
            return self._deny(identity, AccessDeniedCode.NOT_IN_GUILD)

        member = await self._fetch_member(guild_id, identity.id)
        if member is None:
            return self._deny(identity, AccessDeniedCode.MEMBER_FETCH_FAILED)

        if not member.has_any_role(self.settings.allowed_role_ids):
            return self._deny(identity, AccessDeniedCode.NO_REQUIRED_ROLE)

        return AuthorizationDecision.allow(member, at=self._clock())

    async def _fetch_member(self, guild_id: str, user_id: str) -> MemberInfo | None:
        try:
            payload = await self.discord_client.fetch_guild_member(guild_id, user_id)
        except DiscordApiError as exc:
            logger.warning(
                "Guild member lookup failed guild=%s user=%s status=%s",
                guild_id,
                user_id,
                exc.status_code,
            )
            return None
        if not payload:
            return None
        return MemberInfo(
            nick=payload.get("nick"),
            roles=tuple(str(role_id) for role_id in payload.get("roles") or ()),
        )

    def _deny(self, identity: Identity, code: AccessDeniedCode) -> AuthorizationDecision:
        logger.info("Access denied user=%s code=%s", identity.id, code.value)
        return AuthorizationDecision.deny(code, at=self._clock())

    async def _persist(self, context: SessionContext) -> None:
        if context.session_id is None:
            return
        try:
            await self.session_store.save(context.session_id, context.to_record())
        except Exception:
            # The decision still applies to this request; it is recomputed next time.
            logger.warning("Could not cache authorization decision", exc_info=True)
