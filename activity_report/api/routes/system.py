from datetime import datetime, timezone

from fastapi import APIRouter

from activity_report.api.schemas.common import HealthResponse
from activity_report.core.config import get_settings

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    settings = get_settings()
    return HealthResponse(
        status="ok",
        service=settings.BACKEND_APP_NAME,
        environment=settings.BACKEND_ENV,
        version=settings.BACKEND_APP_VERSION,
        timestamp=datetime.now(timezone.utc),
    )
