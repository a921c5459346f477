from fastapi import APIRouter, Depends

from activity_report.api.deps.auth import require_authorization
from activity_report.api.schemas.activities import ActivityResponse
from activity_report.domain.activities import get_activities

router = APIRouter()


@router.get(
    "",
    response_model=list[ActivityResponse],
    response_model_exclude_none=True,
    dependencies=[Depends(require_authorization)],
)
async def list_activities() -> list[ActivityResponse]:
    return [ActivityResponse(**activity.to_payload()) for activity in get_activities()]
