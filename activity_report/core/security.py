from __future__ import annotations

from datetime import datetime, timedelta, timezone
from secrets import token_urlsafe
from typing import Any

import jwt

from activity_report.core.config import BackendSettings
from activity_report.core.errors import ApiException

SESSION_TOKEN_TYPE = "session"
OAUTH_STATE_TOKEN_TYPE = "oauth_state"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def random_token(length: int = 32) -> str:
    return token_urlsafe(length)


def ensure_signing_secret(settings: BackendSettings) -> None:
    if not settings.JWT_SECRET:
        raise ApiException(
            status_code=500,
            error_code="JWT_SECRET_MISSING",
            message="JWT_SECRET is required for sessions",
        )


def create_signed_token(
    *,
    settings: BackendSettings,
    token_type: str,
    claims: dict[str, Any],
    ttl_seconds: int,
) -> tuple[str, datetime]:
    ensure_signing_secret(settings)
    issued_at = utc_now()
    expires_at = issued_at + timedelta(seconds=ttl_seconds)
    payload = {
        **claims,
        "type": token_type,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    token = jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return token, expires_at


def decode_signed_token(
    *,
    settings: BackendSettings,
    token: str,
    expected_type: str,
) -> dict[str, Any]:
    ensure_signing_secret(settings)
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            leeway=settings.JWT_LEEWAY_SECONDS,
        )
    except jwt.ExpiredSignatureError as exc:
        raise ApiException(
            status_code=401,
            error_code="TOKEN_EXPIRED",
            message="Signed token expired",
        ) from exc
    except jwt.PyJWTError as exc:
        raise ApiException(
            status_code=401,
            error_code="TOKEN_INVALID",
            message="Signed token invalid",
        ) from exc

    if payload.get("type") != expected_type:
        raise ApiException(
            status_code=401,
            error_code="TOKEN_TYPE_INVALID",
            message="Token type is invalid",
        )
    return payload


def create_session_token(settings: BackendSettings, session_id: str) -> str:
    token, _ = create_signed_token(
        settings=settings,
        token_type=SESSION_TOKEN_TYPE,
        claims={"sid": session_id},
        ttl_seconds=settings.BACKEND_SESSION_TTL_SECONDS,
    )
    return token


def read_session_id(settings: BackendSettings, token: str | None) -> str | None:
    """Return the session id carried by a cookie value, or ``None`` if unusable."""
    if not token or not settings.JWT_SECRET:
        return None
    try:
        payload = decode_signed_token(
            settings=settings,
            token=token,
            expected_type=SESSION_TOKEN_TYPE,
        )
    except ApiException:
        return None
    session_id = payload.get("sid")
    return str(session_id) if session_id else None
