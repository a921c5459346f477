import asyncio
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any

import pytest

from activity_report.application.dto.auth import (
    AccessDeniedCode,
    AuthorizationDecision,
    SessionContext,
)
from activity_report.infrastructure.session import store as store_module
from activity_report.infrastructure.session.store import (
    MemorySessionStore,
    RedisSessionStore,
    build_session_store,
)


def run(coro: Any) -> Any:
    return asyncio.run(coro)


def test_memory_store_round_trip(identity):
    store = MemorySessionStore(ttl_seconds=60)
    context = SessionContext(session_id="s1", identity=identity)

    run(store.save("s1", context.to_record()))
    loaded = SessionContext.from_record("s1", run(store.load("s1")))

    assert loaded.identity == identity
    assert loaded.identity.access_token == "user-access-token"
    assert loaded.auth_cache is None

    run(store.delete("s1"))
    assert run(store.load("s1")) is None


def test_memory_store_expires_records(monkeypatch):
    clock = SimpleNamespace(monotonic=lambda: 1000.0)
    monkeypatch.setattr(store_module, "time", clock)
    store = MemorySessionStore(ttl_seconds=30)

    run(store.save("s1", {"identity": None, "auth_cache": None}))
    clock.monotonic = lambda: 1029.0
    assert run(store.load("s1")) is not None
    clock.monotonic = lambda: 1030.0
    assert run(store.load("s1")) is None


def test_memory_store_returns_copies():
    store = MemorySessionStore(ttl_seconds=60)
    record = {"identity": None, "auth_cache": None}
    run(store.save("s1", record))

    record["identity"] = {"id": "mutated"}

    assert run(store.load("s1"))["identity"] is None


def test_session_context_record_keeps_identity_and_decision_together(identity):
    decision = AuthorizationDecision.deny(
        AccessDeniedCode.NO_REQUIRED_ROLE,
        at=datetime(2024, 1, 15, tzinfo=timezone.utc),
    )
    context = SessionContext(session_id="s1", identity=identity, auth_cache=decision)

    restored = SessionContext.from_record("s1", context.to_record())

    assert restored == context
    assert restored.is_authenticated


def test_build_session_store(make_settings):
    assert isinstance(build_session_store(make_settings()), MemorySessionStore)

    redis_store = build_session_store(
        make_settings(BACKEND_SESSION_BACKEND="redis", BACKEND_SESSION_PREFIX="portal:session")
    )
    assert isinstance(redis_store, RedisSessionStore)
    assert redis_store._key("abc") == "portal:session:abc"

    with pytest.raises(ValueError):
        build_session_store(make_settings(BACKEND_SESSION_BACKEND="sqlite"))
