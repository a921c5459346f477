import asyncio
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from fastapi.testclient import TestClient

from activity_report.api.deps.auth import get_discord_client, get_session_store
from activity_report.api.routes.posts import get_preview_service
from activity_report.app import create_app
from activity_report.application.dto.auth import SessionContext
from activity_report.application.services.preview_service import LinkPreviewService
from activity_report.core.config import get_settings
from activity_report.core.security import create_session_token
from activity_report.infrastructure.discord.api_client import DiscordApiClient
from activity_report.infrastructure.link_preview.fxtwitter_client import FxTwitterClient

API = "/api/v10"


class FakeDiscord:
    """Just enough of the Discord REST API for the portal's calls."""

    def __init__(self):
        self.members = {"123456": {"nick": "Al", "roles": ["201"]}}
        self.bot_guilds = [{"id": "100", "name": "Club"}]
        self.bot_guilds_status = 200
        self.message_status = 200
        self.messages: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        auth = request.headers.get("Authorization", "")
        if path == f"{API}/oauth2/token":
            return httpx.Response(200, json={"access_token": "user-token", "refresh_token": "r"})
        if path == f"{API}/users/@me":
            return httpx.Response(
                200,
                json={"id": "123456", "username": "alice", "avatar": None, "global_name": "Alice"},
            )
        if path == f"{API}/users/@me/guilds":
            if auth.startswith("Bot "):
                return httpx.Response(self.bot_guilds_status, json=self.bot_guilds)
            return httpx.Response(200, json=[{"id": "100", "name": "Club"}, {"id": "555", "name": "Other"}])
        if path.startswith(f"{API}/guilds/100/members/"):
            member = self.members.get(path.rsplit("/", 1)[-1])
            if member is None:
                return httpx.Response(404, json={"message": "Unknown Member"})
            return httpx.Response(200, json=member)
        if path == f"{API}/channels/300/messages":
            self.messages.append(request)
            if self.message_status >= 400:
                return httpx.Response(self.message_status, json={"message": "nope"})
            return httpx.Response(200, json={"id": "m1", "channel_id": "300"})
        return httpx.Response(404, json={"message": "unexpected"})


@pytest.fixture
def discord():
    return FakeDiscord()


@pytest.fixture
def client(app_env, discord):
    app = create_app()
    app.dependency_overrides[get_discord_client] = lambda: DiscordApiClient.from_settings(
        get_settings(),
        transport=httpx.MockTransport(discord),
    )
    app.dependency_overrides[get_preview_service] = lambda: LinkPreviewService(
        client=FxTwitterClient(
            api_base_url="https://api.fxtwitter.com",
            transport=httpx.MockTransport(lambda request: httpx.Response(404)),
        )
    )
    with TestClient(app) as test_client:
        yield test_client


def sign_in(client: TestClient, identity, session_id: str = "session-1") -> str:
    record = SessionContext(identity=identity).to_record()
    asyncio.run(get_session_store().save(session_id, record))
    settings = get_settings()
    client.cookies.set(settings.BACKEND_SESSION_COOKIE_NAME, create_session_token(settings, session_id))
    return session_id


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.headers["X-Request-ID"]
    assert response.headers["Cache-Control"].startswith("no-store")


def test_request_id_is_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "req-42"})
    assert response.headers["X-Request-ID"] == "req-42"


def test_gated_routes_require_a_session(client):
    for path in ("/api/activities", "/api/user", "/api/guilds"):
        response = client.get(path)
        assert response.status_code == 401
        assert response.json()["error_code"] == "NOT_AUTHENTICATED"


def test_tampered_cookie_is_anonymous(client):
    client.cookies.set(get_settings().BACKEND_SESSION_COOKIE_NAME, "not-a-token")
    assert client.get("/api/activities").status_code == 401


def test_not_in_guild_is_forbidden(client, make_identity):
    sign_in(client, make_identity(guild_ids=("555",)))

    response = client.get("/api/activities")

    assert response.status_code == 403
    assert response.json()["error_code"] == "NOT_IN_GUILD"


def test_missing_role_is_forbidden(client, identity, discord):
    discord.members["123456"] = {"nick": None, "roles": ["999"]}
    sign_in(client, identity)

    response = client.get("/api/activities")

    assert response.status_code == 403
    assert response.json()["error_code"] == "NO_REQUIRED_ROLE"


def test_unknown_member_is_forbidden(client, identity, discord):
    discord.members.clear()
    sign_in(client, identity)

    assert client.get("/api/activities").json()["error_code"] == "MEMBER_FETCH_FAILED"


def test_activities_for_authorized_member(client, identity):
    sign_in(client, identity)

    response = client.get("/api/activities")

    assert response.status_code == 200
    activities = response.json()
    assert len(activities) == 6
    assert activities[0] == {"id": "muscle", "name": "筋トレ部", "emoji": "🏋️"}
    assert activities[-1] == {"id": "other", "name": "その他", "emoji": "📝", "isCustom": True}


def test_current_user_hides_tokens_and_guilds(client, identity):
    sign_in(client, identity)

    body = client.get("/api/user").json()

    assert body["id"] == "123456"
    assert body["username"] == "alice"
    assert "access_token" not in body
    assert "guilds" not in body


def test_guilds_lists_configured_guild_when_bot_is_present(client, identity, discord):
    sign_in(client, identity)
    assert client.get("/api/guilds").json() == [{"id": "100", "name": "Guild 100", "icon": None}]

    discord.bot_guilds = [{"id": "555"}]
    assert client.get("/api/guilds").json() == []

    discord.bot_guilds_status = 500
    response = client.get("/api/guilds")
    assert response.status_code == 500
    assert response.json()["error_code"] == "GUILD_FETCH_FAILED"


def test_status_for_anonymous_visitor(client):
    assert client.get("/auth/status").json() == {
        "authenticated": False,
        "authorized": False,
        "error": None,
        "user": None,
    }


def test_status_reports_denial_without_failing(client, identity, discord):
    discord.members["123456"] = {"roles": []}
    sign_in(client, identity)

    response = client.get("/auth/status")

    assert response.status_code == 200
    body = response.json()
    assert body["authenticated"] is True
    assert body["authorized"] is False
    assert body["error"] == "NO_REQUIRED_ROLE"
    assert body["user"]["username"] == "alice"


def test_failed_login_page(client):
    response = client.get("/auth/failed")

    assert response.status_code == 401
    assert response.json()["message"] == "Authentication failed"


def test_logout_drops_session(client, identity):
    session_id = sign_in(client, identity)

    response = client.get("/auth/logout")

    assert response.status_code == 200
    assert response.json() == {"message": "Logged out successfully"}
    assert asyncio.run(get_session_store().load(session_id)) is None
    assert get_settings().BACKEND_SESSION_COOKIE_NAME in response.headers["set-cookie"]


def test_oauth_round_trip_creates_session(client):
    login = client.get("/auth/discord", follow_redirects=False)
    assert login.status_code == 302
    authorize = urlsplit(login.headers["location"])
    assert authorize.path == f"{API}/oauth2/authorize"
    state = parse_qs(authorize.query)["state"][0]

    callback = client.get(
        "/auth/discord/callback",
        params={"code": "abc", "state": state},
        follow_redirects=False,
    )

    assert callback.status_code == 302
    assert callback.headers["location"] == "http://localhost:5173/auth/callback"
    status = client.get("/auth/status").json()
    assert status["authenticated"] is True
    assert status["authorized"] is True
    assert status["user"]["global_name"] == "Alice"


def test_callback_with_bad_state_redirects_to_failure(client):
    response = client.get(
        "/auth/discord/callback",
        params={"code": "abc", "state": "forged"},
        follow_redirects=False,
    )

    assert response.status_code == 302
    assert response.headers["location"] == "/auth/failed"


def _post_fields(**overrides):
    fields = {
        "activityId": "mahjong",
        "date": "2024-01-15",
        "timeStart": "19:00",
        "timeEnd": "22:00",
        "participants": "4",
        "content": "Two hanchan",
    }
    fields.update(overrides)
    return fields


def test_create_post(client, identity, discord):
    sign_in(client, identity)

    response = client.post("/api/posts", data=_post_fields())

    assert response.status_code == 200
    assert response.json() == {"success": True, "messageId": "m1"}
    assert len(discord.messages) == 1


def test_create_post_with_image(client, identity, discord):
    sign_in(client, identity)

    response = client.post(
        "/api/posts",
        data=_post_fields(),
        files={"image": ("photo.png", b"\x89PNG-bytes", "image/png")},
    )

    assert response.status_code == 200
    body = discord.messages[0].content
    assert b'name="files[0]"' in body
    assert b"\x89PNG-bytes" in body


def test_create_post_validation_error(client, identity, discord):
    sign_in(client, identity)

    response = client.post("/api/posts", data=_post_fields(activityId="chess"))

    assert response.status_code == 400
    assert response.json()["message"] == "Valid activity is required"
    assert discord.messages == []


def test_create_post_rejects_unsupported_image(client, identity, discord):
    sign_in(client, identity)

    response = client.post(
        "/api/posts",
        data=_post_fields(),
        files={"image": ("notes.txt", b"hello", "text/plain")},
    )

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_IMAGE_TYPE"
    assert discord.messages == []


def test_create_post_dispatch_failure(client, identity, discord):
    discord.message_status = 500
    sign_in(client, identity)

    response = client.post("/api/posts", data=_post_fields())

    assert response.status_code == 500
    assert response.json()["message"] == "Failed to post message"


def test_create_post_requires_authorization(client):
    response = client.post("/api/posts", data=_post_fields())
    assert response.status_code == 401
