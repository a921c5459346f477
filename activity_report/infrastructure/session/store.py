from __future__ import annotations

import json
import logging
import time
from typing import Any, Protocol

from redis.asyncio import Redis

from activity_report.core.config import BackendSettings

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    async def load(self, session_id: str) -> dict[str, Any] | None: ...

    async def save(self, session_id: str, record: dict[str, Any]) -> None: ...

    async def delete(self, session_id: str) -> None: ...

    async def close(self) -> None: ...


class RedisSessionStore:
    """Session records as JSON strings under ``{prefix}:{session_id}`` with a TTL."""

    def __init__(self, *, redis_url: str, prefix: str, ttl_seconds: int):
        self.redis_url = redis_url
        self.prefix = prefix
        self.ttl_seconds = max(1, int(ttl_seconds))
        self._redis: Redis | None = None

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def load(self, session_id: str) -> dict[str, Any] | None:
        try:
            client = await self._client()
            raw = await client.get(self._key(session_id))
        except Exception:
            logger.warning("Session load failed; treating request as anonymous", exc_info=True)
            return None
        if raw is None:
            return None
        try:
            record = json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable session record")
            return None
        return record if isinstance(record, dict) else None

    async def save(self, session_id: str, record: dict[str, Any]) -> None:
        payload = json.dumps(record, separators=(",", ":"), ensure_ascii=False)
        client = await self._client()
        await client.set(self._key(session_id), payload, ex=self.ttl_seconds)

    async def delete(self, session_id: str) -> None:
        client = await self._client()
        await client.delete(self._key(session_id))

    def _key(self, session_id: str) -> str:
        return f"{self.prefix}:{session_id}"

    async def _client(self) -> Redis:
        if self._redis is None:
            self._redis = Redis.from_url(self.redis_url, decode_responses=True)
        return self._redis


class MemorySessionStore:
    """Process-local session storage for development and tests."""

    def __init__(self, *, ttl_seconds: int):
        self.ttl_seconds = max(1, int(ttl_seconds))
        self._records: dict[str, tuple[float, str]] = {}

    async def close(self) -> None:
        self._records.clear()

    async def load(self, session_id: str) -> dict[str, Any] | None:
        entry = self._records.get(session_id)
        if entry is None:
            return None
        expires_at, payload = entry
        if expires_at <= time.monotonic():
            self._records.pop(session_id, None)
            return None
        return json.loads(payload)

    async def save(self, session_id: str, record: dict[str, Any]) -> None:
        # Stored serialized so callers never share mutable state with the store.
        self._records[session_id] = (
            time.monotonic() + self.ttl_seconds,
            json.dumps(record, ensure_ascii=False),
        )

    async def delete(self, session_id: str) -> None:
        self._records.pop(session_id, None)


def build_session_store(settings: BackendSettings) -> SessionStore:
    backend = settings.BACKEND_SESSION_BACKEND.strip().lower()
    if backend == "memory":
        return MemorySessionStore(ttl_seconds=settings.BACKEND_SESSION_TTL_SECONDS)
    if backend != "redis":
        raise ValueError(f"Unsupported BACKEND_SESSION_BACKEND: {settings.BACKEND_SESSION_BACKEND}")
    return RedisSessionStore(
        redis_url=settings.REDIS_URL,
        prefix=settings.BACKEND_SESSION_PREFIX,
        ttl_seconds=settings.BACKEND_SESSION_TTL_SECONDS,
    )
