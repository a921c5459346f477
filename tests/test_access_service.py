import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from activity_report.application.dto.auth import (
    AccessDeniedCode,
    AuthorizationDecision,
    MemberInfo,
    SessionContext,
)
from activity_report.application.services.access_service import AccessControlService
from activity_report.infrastructure.discord.api_client import DiscordApiError
from activity_report.infrastructure.session.store import MemorySessionStore


def run(coro: Any) -> Any:
    return asyncio.run(coro)


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


class FakeDiscordClient:
    def __init__(self, member: Any = None, error: Exception | None = None):
        self.member = member
        self.error = error
        self.calls: list[tuple[str, str]] = []

    async def fetch_guild_member(self, guild_id: str, user_id: str) -> dict[str, Any]:
        self.calls.append((guild_id, user_id))
        if self.error is not None:
            raise self.error
        return self.member


class BrokenStore(MemorySessionStore):
    async def save(self, session_id, record):
        raise ConnectionError("store offline")


def _service(settings, client, clock=None, store=None):
    return AccessControlService(
        session_store=store or MemorySessionStore(ttl_seconds=3600),
        settings=settings,
        discord_client=client,
        clock=clock or FakeClock(),
    )


def test_not_in_guild_is_denied_without_lookup(settings, make_identity):
    client = FakeDiscordClient(member={"roles": ["201"]})
    context = SessionContext(session_id="s1", identity=make_identity(guild_ids=("999",)))

    decision = run(_service(settings, client).evaluate(context))

    assert decision.authorized is False
    assert decision.error is AccessDeniedCode.NOT_IN_GUILD
    assert client.calls == []


@pytest.mark.parametrize(
    "client",
    [
        FakeDiscordClient(error=DiscordApiError("not found", status_code=404)),
        FakeDiscordClient(error=DiscordApiError("transport failed")),
        FakeDiscordClient(member={}),
    ],
)
def test_member_lookup_failure_is_denied(settings, identity, client):
    context = SessionContext(session_id="s1", identity=identity)

    decision = run(_service(settings, client).evaluate(context))

    assert decision.error is AccessDeniedCode.MEMBER_FETCH_FAILED
    assert client.calls == [("100", "123456")]


def test_member_without_allowed_role_is_denied(settings, identity):
    client = FakeDiscordClient(member={"nick": "Al", "roles": ["999"]})
    context = SessionContext(session_id="s1", identity=identity)

    decision = run(_service(settings, client).evaluate(context))

    assert decision.error is AccessDeniedCode.NO_REQUIRED_ROLE
    assert decision.member is None


def test_member_with_allowed_role_is_authorized(settings, identity):
    client = FakeDiscordClient(member={"nick": "Al", "roles": ["999", 201]})
    context = SessionContext(session_id="s1", identity=identity)

    decision = run(_service(settings, client).evaluate(context))

    assert decision.authorized is True
    assert decision.error is None
    assert decision.member == MemberInfo(nick="Al", roles=("999", "201"))


def test_decision_is_cached_within_the_window(settings, identity):
    clock = FakeClock()
    store = MemorySessionStore(ttl_seconds=3600)
    client = FakeDiscordClient(member={"roles": ["201"]})
    service = _service(settings, client, clock=clock, store=store)
    context = SessionContext(session_id="s1", identity=identity)

    first = run(service.evaluate(context))
    clock.advance(299)
    second = run(service.evaluate(context))

    assert second is first
    assert len(client.calls) == 1
    record = run(store.load("s1"))
    assert record["auth_cache"]["authorized"] is True

    clock.advance(2)
    third = run(service.evaluate(context))

    assert third is not first
    assert third.timestamp == clock.now
    assert len(client.calls) == 2


def test_denials_are_cached_too(settings, identity):
    clock = FakeClock()
    client = FakeDiscordClient(member={"roles": ["999"]})
    service = _service(settings, client, clock=clock)
    context = SessionContext(session_id="s1", identity=identity)

    run(service.evaluate(context))
    client.member = {"roles": ["201"]}
    clock.advance(60)

    assert run(service.evaluate(context)).error is AccessDeniedCode.NO_REQUIRED_ROLE
    assert len(client.calls) == 1

    clock.advance(300)
    assert run(service.evaluate(context)).authorized is True


def test_cached_decision_survives_a_store_round_trip(settings, identity):
    clock = FakeClock()
    store = MemorySessionStore(ttl_seconds=3600)
    client = FakeDiscordClient(member={"nick": None, "roles": ["201"]})
    service = _service(settings, client, clock=clock, store=store)

    run(service.evaluate(SessionContext(session_id="s1", identity=identity)))
    reloaded = SessionContext.from_record("s1", run(store.load("s1")))
    clock.advance(10)
    decision = run(service.evaluate(reloaded))

    assert decision.authorized is True
    assert decision.timestamp == clock.now - timedelta(seconds=10)
    assert len(client.calls) == 1


def test_store_failure_does_not_change_the_decision(settings, identity):
    client = FakeDiscordClient(member={"roles": ["201"]})
    service = _service(settings, client, store=BrokenStore(ttl_seconds=60))
    context = SessionContext(session_id="s1", identity=identity)

    decision = run(service.evaluate(context))

    assert decision.authorized is True
    assert context.auth_cache is decision


def test_evaluate_requires_identity(settings):
    with pytest.raises(ValueError):
        run(_service(settings, FakeDiscordClient()).evaluate(SessionContext()))


def test_decision_invariant():
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    with pytest.raises(ValueError):
        AuthorizationDecision(authorized=True, error=AccessDeniedCode.NOT_IN_GUILD, member=None, timestamp=now)
    with pytest.raises(ValueError):
        AuthorizationDecision(authorized=False, error=None, member=None, timestamp=now)
