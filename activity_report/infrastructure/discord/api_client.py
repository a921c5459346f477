from __future__ import annotations

import json
from typing import Any
from urllib.parse import urlencode

import httpx

from activity_report.core.config import BackendSettings


class DiscordApiError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class DiscordApiClient:
    """Thin async wrapper over the Discord REST endpoints this backend touches.

    User-scoped calls authenticate with the member's OAuth bearer token;
    guild lookups and message posting use the bot token so they cannot be
    influenced by a stale or scope-limited user token.
    """

    def __init__(
        self,
        *,
        api_base_url: str,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        oauth_scopes: str,
        bot_token: str,
        timeout_seconds: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_base_url = api_base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.oauth_scopes = oauth_scopes
        self.bot_token = bot_token
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @classmethod
    def from_settings(
        cls,
        settings: BackendSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> DiscordApiClient:
        return cls(
            api_base_url=settings.DISCORD_API_BASE_URL,
            client_id=settings.DISCORD_CLIENT_ID,
            client_secret=settings.DISCORD_CLIENT_SECRET,
            redirect_uri=settings.DISCORD_REDIRECT_URI,
            oauth_scopes=settings.oauth_scopes,
            bot_token=settings.DISCORD_BOT_TOKEN,
            timeout_seconds=settings.DISCORD_HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )

    def build_authorize_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": self.oauth_scopes,
            "state": state,
            "prompt": "consent",
        }
        return f"{self.api_base_url}/oauth2/authorize?{urlencode(params)}"

    async def exchange_code(self, code: str) -> dict[str, Any]:
        payload = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
        }
        data = await self._request(
            "POST",
            "/oauth2/token",
            operation="token exchange",
            data=payload,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        if not isinstance(data, dict) or "access_token" not in data:
            raise DiscordApiError("Discord token exchange returned no access_token")
        return data

    async def fetch_user(self, access_token: str) -> dict[str, Any]:
        payload = await self._request(
            "GET",
            "/users/@me",
            operation="/users/@me",
            headers=self._bearer_headers(access_token),
        )
        if not isinstance(payload, dict) or "id" not in payload:
            raise DiscordApiError("Discord /users/@me response was not a user object")
        return payload

    async def fetch_user_guilds(self, access_token: str) -> list[dict[str, Any]]:
        payload = await self._request(
            "GET",
            "/users/@me/guilds",
            operation="/users/@me/guilds",
            headers=self._bearer_headers(access_token),
        )
        if not isinstance(payload, list):
            raise DiscordApiError("Discord /users/@me/guilds response was not a list")
        return payload

    async def fetch_bot_guilds(self) -> list[dict[str, Any]]:
        payload = await self._request(
            "GET",
            "/users/@me/guilds",
            operation="bot guilds",
            headers=self._bot_headers(),
        )
        if not isinstance(payload, list):
            raise DiscordApiError("Discord bot guilds response was not a list")
        return payload

    async def fetch_guild_member(self, guild_id: str, user_id: str) -> dict[str, Any]:
        payload = await self._request(
            "GET",
            f"/guilds/{guild_id}/members/{user_id}",
            operation="guild member",
            headers=self._bot_headers(),
        )
        if not isinstance(payload, dict):
            raise DiscordApiError("Discord guild member response was not an object")
        return payload

    async def create_message(
        self,
        channel_id: str,
        payload: dict[str, Any],
        *,
        file: tuple[str, bytes, str] | None = None,
    ) -> dict[str, Any]:
        """Post a message; with ``file`` the body becomes multipart.

        ``file`` is ``(filename, data, content_type)`` and is sent as
        ``files[0]``. The payload's ``attachments`` entry must use the same
        filename for ``attachment://`` references in embeds to resolve.
        """
        if file is None:
            body: dict[str, Any] = {"json": payload}
        else:
            body = {
                "data": {"payload_json": json.dumps(payload, ensure_ascii=False)},
                "files": {"files[0]": file},
            }
        message = await self._request(
            "POST",
            f"/channels/{channel_id}/messages",
            operation="create message",
            headers=self._bot_headers(),
            **body,
        )
        if not isinstance(message, dict) or "id" not in message:
            raise DiscordApiError("Discord create message response had no id")
        return message

    async def _request(self, method: str, path: str, *, operation: str, **kwargs: Any) -> Any:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.request(method, f"{self.api_base_url}{path}", **kwargs)
        except httpx.HTTPError as exc:
            raise DiscordApiError(
                f"Discord {operation} request failed: {exc.__class__.__name__}"
            ) from exc

        if response.status_code == 404:
            raise DiscordApiError(f"Discord {operation} not found", status_code=404)
        if response.status_code >= 400:
            raise DiscordApiError(
                f"Discord {operation} failed ({response.status_code}): {response.text}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise DiscordApiError(f"Discord {operation} returned invalid JSON") from exc

    def _bot_headers(self) -> dict[str, str]:
        if not self.bot_token:
            raise DiscordApiError("DISCORD_BOT_TOKEN is required for bot requests")
        return {"Authorization": f"Bot {self.bot_token}"}

    @staticmethod
    def _bearer_headers(access_token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}
