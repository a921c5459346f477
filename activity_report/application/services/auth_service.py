from __future__ import annotations

import logging
from typing import Any

from activity_report.application.dto.auth import GuildMembership, Identity, SessionContext
from activity_report.core.config import BackendSettings, get_settings
from activity_report.core.errors import ApiException
from activity_report.core.security import (
    OAUTH_STATE_TOKEN_TYPE,
    create_signed_token,
    decode_signed_token,
    ensure_signing_secret,
    random_token,
)
from activity_report.infrastructure.discord.api_client import DiscordApiClient, DiscordApiError
from activity_report.infrastructure.session.store import SessionStore

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(
        self,
        *,
        session_store: SessionStore,
        settings: BackendSettings | None = None,
        discord_client: DiscordApiClient | None = None,
    ):
        self.settings = settings or get_settings()
        self.session_store = session_store
        self.discord_client = discord_client or DiscordApiClient.from_settings(self.settings)

    def _ensure_oauth_config(self) -> None:
        if not self.settings.DISCORD_CLIENT_ID or not self.settings.DISCORD_CLIENT_SECRET:
            raise ApiException(
                status_code=500,
                error_code="OAUTH_CONFIG_MISSING",
                message="Discord OAuth credentials are not configured",
            )
        ensure_signing_secret(self.settings)

    def build_login_url(self) -> str:
        self._ensure_oauth_config()
        state_token, _ = create_signed_token(
            settings=self.settings,
            token_type=OAUTH_STATE_TOKEN_TYPE,
            claims={"nonce": random_token(8)},
            ttl_seconds=self.settings.BACKEND_AUTH_STATE_TTL_SECONDS,
        )
        return self.discord_client.build_authorize_url(state_token)

    async def handle_callback(self, *, code: str, state: str) -> str:
        """Complete the OAuth handshake and return the new session id."""
        self._ensure_oauth_config()
        decode_signed_token(
            settings=self.settings,
            token=state,
            expected_type=OAUTH_STATE_TOKEN_TYPE,
        )

        try:
            token_payload = await self.discord_client.exchange_code(code)
            access_token = str(token_payload["access_token"])
            user_payload = await self.discord_client.fetch_user(access_token)
            guilds_payload = await self.discord_client.fetch_user_guilds(access_token)
        except DiscordApiError as exc:
            raise ApiException(
                status_code=502,
                error_code="DISCORD_OAUTH_FAILED",
                message=str(exc),
            ) from exc

        identity = build_identity(
            user_payload,
            guilds_payload,
            access_token=access_token,
            refresh_token=str(token_payload.get("refresh_token") or ""),
        )
        session_id = random_token(24)
        await self.session_store.save(session_id, SessionContext(identity=identity).to_record())
        logger.info("Discord login completed user=%s guilds=%s", identity.id, len(identity.guilds))
        return session_id

    async def logout(self, session_id: str | None) -> None:
        if session_id is None:
            return
        await self.session_store.delete(session_id)

    async def list_visible_guilds(self, identity: Identity) -> list[GuildMembership]:
        """The configured guild, if both the user and the bot belong to it."""
        guild_id = self.settings.DISCORD_ALLOWED_GUILD_ID
        guild = identity.find_guild(guild_id) if guild_id else None
        if guild is None:
            return []
        try:
            bot_guilds = await self.discord_client.fetch_bot_guilds()
        except DiscordApiError as exc:
            logger.error("Bot guild lookup failed: %s", exc)
            raise ApiException(
                status_code=500,
                error_code="GUILD_FETCH_FAILED",
                message="Failed to fetch guilds",
            ) from exc
        bot_guild_ids = {str(item.get("id")) for item in bot_guilds if isinstance(item, dict)}
        return [guild] if guild.id in bot_guild_ids else []


def build_identity(
    user_payload: dict[str, Any],
    guilds_payload: list[dict[str, Any]],
    *,
    access_token: str,
    refresh_token: str = "",
) -> Identity:
    return Identity(
        id=str(user_payload["id"]),
        username=str(user_payload.get("username") or ""),
        avatar=user_payload.get("avatar"),
        discriminator=user_payload.get("discriminator"),
        global_name=user_payload.get("global_name"),
        guilds=tuple(
            GuildMembership.from_payload(item)
            for item in guilds_payload
            if isinstance(item, dict) and item.get("id")
        ),
        access_token=access_token,
        refresh_token=refresh_token,
    )
