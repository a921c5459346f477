from typing import Any

import pytest

from activity_report.application.dto.auth import GuildMembership, Identity
from activity_report.core.config import BackendSettings

TEST_ENV = {
    "DISCORD_CLIENT_ID": "client-id",
    "DISCORD_CLIENT_SECRET": "client-secret",
    "DISCORD_BOT_TOKEN": "bot-token",
    "DISCORD_ALLOWED_GUILD_ID": "100",
    "DISCORD_ALLOWED_ROLE_IDS": "200,201",
    "DISCORD_POST_CHANNEL_ID": "300",
    "JWT_SECRET": "test-signing-secret",
    "BACKEND_SESSION_BACKEND": "memory",
    "BACKEND_ENABLE_ACCESS_LOG": "false",
}


@pytest.fixture
def make_settings():
    """Settings built from the test values only, ignoring any local ``.env``."""

    def _make(**overrides: Any) -> BackendSettings:
        values: dict[str, Any] = dict(TEST_ENV)
        values.update(overrides)
        return BackendSettings(_env_file=None, **values)

    return _make


@pytest.fixture
def settings(make_settings) -> BackendSettings:
    return make_settings()


@pytest.fixture
def make_identity():
    def _make(*, guild_ids: tuple[str, ...] = ("100",), **overrides: Any) -> Identity:
        values: dict[str, Any] = {
            "id": "123456",
            "username": "alice",
            "avatar": "avatarhash",
            "global_name": "Alice",
            "guilds": tuple(
                GuildMembership(id=guild_id, name=f"Guild {guild_id}") for guild_id in guild_ids
            ),
            "access_token": "user-access-token",
            "refresh_token": "user-refresh-token",
        }
        values.update(overrides)
        return Identity(**values)

    return _make


@pytest.fixture
def identity(make_identity) -> Identity:
    return make_identity()


@pytest.fixture
def app_env(monkeypatch):
    """Point ``get_settings()`` at the test values and drop cached singletons."""
    from activity_report.api.deps.auth import get_session_store
    from activity_report.core.config import get_settings

    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)
    get_settings.cache_clear()
    get_session_store.cache_clear()
    yield
    get_settings.cache_clear()
    get_session_store.cache_clear()
