"""
Sliding Window Rate Limit Middleware

Applies the per-client sliding-window limit to every request except the
exempt path prefixes (health and docs by default). Clients that cannot be
identified are let through. Denied requests get 429 with a Retry-After
header equal to the window length.

The limiter instance is owned by the application components; this
middleware only looks it up on app.state. It also binds the app settings
for the slowapi per-route limits of the request.
"""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from urlshortener.core.rate_limit import request_settings_var
from urlshortener.core.request_info import get_client_ip

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):

    def __init__(self, app, exempt_paths=()):
        super().__init__(app)
        self.exempt_paths = tuple(exempt_paths)

    def _is_exempt(self, path: str) -> bool:
        return any(path == prefix or path.startswith(prefix.rstrip("/") + "/") for prefix in self.exempt_paths)

    async def dispatch(self, request: Request, call_next):
        token = request_settings_var.set(getattr(request.app.state, "settings", None))
        try:
            return await self._admit_or_reject(request, call_next)
        finally:
            request_settings_var.reset(token)

    async def _admit_or_reject(self, request: Request, call_next):
        components = getattr(request.app.state, "components", None)
        if components is None or not components.settings.RATE_LIMIT_ENABLED:
            return await call_next(request)

        if self._is_exempt(request.url.path):
            return await call_next(request)

        limiter = components.rate_limiter
        client_ip = get_client_ip(request)

        if not limiter.admit(client_ip):
            retry_after = limiter.retry_after_seconds
            logger.warning(f"Rate limit exceeded for {client_ip} on {request.method} {request.url.path}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "error": "Rate limit exceeded",
                    "message": f"Too many requests. Try again in {retry_after} seconds.",
                    "retry_after": retry_after,
                },
                headers={"Retry-After": str(retry_after)},
            )

        return await call_next(request)


def add_rate_limit_middleware(app, exempt_paths=()):
    app.add_middleware(RateLimitMiddleware, exempt_paths=exempt_paths)
