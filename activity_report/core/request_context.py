import contextvars
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

request_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar(
    "request_id", default="-"
)

NO_STORE_CACHE_CONTROL = "no-store, no-cache, must-revalidate, private"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags each request with an ID and keeps responses out of shared caches.

    Every route here is session-bound, so a CDN in front of the backend must
    never serve one member's response to another.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        token = request_id_ctx.set(request_id)
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            response.headers["Cache-Control"] = NO_STORE_CACHE_CONTROL
            return response
        finally:
            request_id_ctx.reset(token)


def client_identity(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
