from __future__ import annotations

import logging
from time import perf_counter

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from activity_report.core.config import BackendSettings, get_settings
from activity_report.core.request_context import client_identity

logger = logging.getLogger(__name__)


class AccessLogMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, settings: BackendSettings | None = None):
        super().__init__(app)
        self.settings = settings or get_settings()

    async def dispatch(self, request: Request, call_next):
        started = perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            if self.settings.BACKEND_ENABLE_ACCESS_LOG:
                logger.info(
                    "http_request method=%s path=%s route=%s status=%s duration_ms=%.2f ip=%s",
                    request.method,
                    request.url.path,
                    _route_path(request),
                    status_code,
                    max(0.0, perf_counter() - started) * 1000.0,
                    client_identity(request),
                )


def _route_path(request: Request) -> str:
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return str(path) if path else "unmatched"
