from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends, Request

from activity_report.application.dto.auth import SessionContext
from activity_report.application.services.access_service import AccessControlService
from activity_report.core.config import get_settings
from activity_report.core.errors import ApiException
from activity_report.core.security import read_session_id
from activity_report.infrastructure.discord.api_client import DiscordApiClient
from activity_report.infrastructure.session.store import SessionStore, build_session_store

logger = logging.getLogger(__name__)


@lru_cache
def get_session_store() -> SessionStore:
    return build_session_store(get_settings())


def get_discord_client() -> DiscordApiClient:
    return DiscordApiClient.from_settings(get_settings())


def get_access_service(
    session_store: SessionStore = Depends(get_session_store),
    discord_client: DiscordApiClient = Depends(get_discord_client),
) -> AccessControlService:
    return AccessControlService(session_store=session_store, discord_client=discord_client)


async def get_session_context(
    request: Request,
    session_store: SessionStore = Depends(get_session_store),
) -> SessionContext:
    settings = get_settings()
    session_id = read_session_id(settings, request.cookies.get(settings.BACKEND_SESSION_COOKIE_NAME))
    context = SessionContext()
    if session_id is not None:
        record = await session_store.load(session_id)
        if record is not None:
            try:
                context = SessionContext.from_record(session_id, record)
            except (KeyError, TypeError, ValueError):
                logger.warning("Discarding malformed session record", exc_info=True)
        else:
            # Cookie outlived its record; keep the id so logout can still clear it.
            context = SessionContext(session_id=session_id)
    request.state.session_context = context
    return context


async def require_authorization(
    request: Request,
    context: SessionContext = Depends(get_session_context),
    service: AccessControlService = Depends(get_access_service),
) -> SessionContext:
    if not context.is_authenticated:
        raise ApiException(
            status_code=401,
            error_code="NOT_AUTHENTICATED",
            message="Authentication is required for this endpoint",
        )
    decision = await service.evaluate(context)
    if not decision.authorized:
        raise ApiException(
            status_code=403,
            error_code=decision.error.value,
            message="Access denied",
        )
    request.state.member_info = decision.member
    return context
