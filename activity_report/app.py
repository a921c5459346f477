import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from activity_report.api.deps.auth import get_session_store
from activity_report.api.router import api_router, auth_router, system_router
from activity_report.core.config import get_settings
from activity_report.core.errors import register_exception_handlers
from activity_report.core.logging import configure_logging
from activity_report.core.observability import AccessLogMiddleware
from activity_report.core.request_context import RequestContextMiddleware

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """FastAPI app factory."""
    settings = get_settings()
    configure_logging(settings.BACKEND_LOG_LEVEL, settings.BACKEND_LOG_FORMAT)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        missing = settings.missing_required_settings()
        if missing:
            logger.warning("Missing required settings: %s", ", ".join(missing))
        logger.info(
            "Starting %s env=%s session_backend=%s",
            settings.BACKEND_APP_NAME,
            settings.BACKEND_ENV,
            settings.BACKEND_SESSION_BACKEND,
        )
        try:
            yield
        finally:
            await get_session_store().close()

    app = FastAPI(
        title=settings.BACKEND_APP_NAME,
        version=settings.BACKEND_APP_VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(AccessLogMiddleware, settings=settings)
    app.add_middleware(RequestContextMiddleware)
    if settings.BACKEND_CORS_ENABLED:
        # Registered last so it wraps the full stack and answers preflight first.
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_credentials=True,
            allow_methods=settings.cors_allow_methods,
            allow_headers=settings.cors_allow_headers,
            expose_headers=settings.cors_expose_headers,
            max_age=settings.BACKEND_CORS_MAX_AGE_SECONDS,
        )
    app.include_router(system_router)
    app.include_router(auth_router, prefix="/auth")
    app.include_router(api_router, prefix="/api")
    register_exception_handlers(app)

    return app
