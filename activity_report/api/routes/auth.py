from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import RedirectResponse

from activity_report.api.deps.auth import (
    get_access_service,
    get_discord_client,
    get_session_context,
    get_session_store,
)
from activity_report.api.schemas.auth import AuthStatusResponse, UserResponse
from activity_report.api.schemas.common import MessageResponse
from activity_report.application.dto.auth import SessionContext
from activity_report.application.services.access_service import AccessControlService
from activity_report.application.services.auth_service import AuthService
from activity_report.core.config import BackendSettings, get_settings
from activity_report.core.errors import ApiException
from activity_report.core.security import create_session_token
from activity_report.infrastructure.discord.api_client import DiscordApiClient
from activity_report.infrastructure.session.store import SessionStore

logger = logging.getLogger(__name__)

router = APIRouter()

FAILED_PATH = "/auth/failed"


def get_auth_service(
    session_store: SessionStore = Depends(get_session_store),
    discord_client: DiscordApiClient = Depends(get_discord_client),
) -> AuthService:
    return AuthService(session_store=session_store, discord_client=discord_client)


def _set_session_cookie(response: Response, *, settings: BackendSettings, token: str) -> None:
    max_age = settings.BACKEND_SESSION_TTL_SECONDS
    response.set_cookie(
        key=settings.BACKEND_SESSION_COOKIE_NAME,
        value=token,
        max_age=max_age,
        expires=max_age,
        path=settings.BACKEND_SESSION_COOKIE_PATH or "/",
        domain=settings.session_cookie_domain,
        secure=settings.BACKEND_SESSION_COOKIE_SECURE,
        httponly=True,
        samesite=settings.session_cookie_samesite,
    )


def _clear_session_cookie(response: Response, *, settings: BackendSettings) -> None:
    response.delete_cookie(
        key=settings.BACKEND_SESSION_COOKIE_NAME,
        path=settings.BACKEND_SESSION_COOKIE_PATH or "/",
        domain=settings.session_cookie_domain,
        secure=settings.BACKEND_SESSION_COOKIE_SECURE,
        httponly=True,
        samesite=settings.session_cookie_samesite,
    )


@router.get("/discord")
async def discord_login(service: AuthService = Depends(get_auth_service)):
    return RedirectResponse(service.build_login_url(), status_code=302)


@router.get("/discord/callback")
async def discord_callback(
    code: str | None = Query(default=None, max_length=512),
    state: str | None = Query(default=None, max_length=4096),
    service: AuthService = Depends(get_auth_service),
):
    if not code or not state:
        logger.info("Discord callback without code or state")
        return RedirectResponse(FAILED_PATH, status_code=302)
    try:
        session_id = await service.handle_callback(code=code, state=state)
    except ApiException as exc:
        logger.warning("Discord login failed code=%s: %s", exc.error_code, exc.message)
        return RedirectResponse(FAILED_PATH, status_code=302)

    settings = service.settings
    response = RedirectResponse(f"{settings.frontend_url}/auth/callback", status_code=302)
    _set_session_cookie(response, settings=settings, token=create_session_token(settings, session_id))
    return response


@router.get("/failed")
async def auth_failed():
    raise ApiException(
        status_code=401,
        error_code="AUTHENTICATION_FAILED",
        message="Authentication failed",
    )


@router.api_route("/logout", methods=["GET", "POST"], response_model=MessageResponse)
async def auth_logout(
    response: Response,
    context: SessionContext = Depends(get_session_context),
    service: AuthService = Depends(get_auth_service),
):
    await service.logout(context.session_id)
    _clear_session_cookie(response, settings=get_settings())
    return MessageResponse(message="Logged out successfully")


@router.get("/status", response_model=AuthStatusResponse)
async def auth_status(
    context: SessionContext = Depends(get_session_context),
    service: AccessControlService = Depends(get_access_service),
):
    if not context.is_authenticated:
        return AuthStatusResponse(authenticated=False)
    decision = await service.evaluate(context)
    return AuthStatusResponse(
        authenticated=True,
        authorized=decision.authorized,
        error=decision.error.value if decision.error else None,
        user=UserResponse(**context.identity.public_payload()),
    )
