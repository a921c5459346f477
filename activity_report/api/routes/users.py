from fastapi import APIRouter, Depends

from activity_report.api.deps.auth import require_authorization
from activity_report.api.routes.auth import get_auth_service
from activity_report.api.schemas.auth import GuildResponse, UserResponse
from activity_report.application.dto.auth import SessionContext
from activity_report.application.services.auth_service import AuthService

router = APIRouter()


@router.get("/user", response_model=UserResponse)
async def current_user(context: SessionContext = Depends(require_authorization)):
    return UserResponse(**context.identity.public_payload())


@router.get("/guilds", response_model=list[GuildResponse])
async def visible_guilds(
    context: SessionContext = Depends(require_authorization),
    service: AuthService = Depends(get_auth_service),
):
    guilds = await service.list_visible_guilds(context.identity)
    return [GuildResponse(**guild.to_payload()) for guild in guilds]
