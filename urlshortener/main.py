"""
FastAPI Application Entry Point

This module initializes the FastAPI application and configures:
- API routes
- Middleware (logging, sliding-window rate limit, CORS)
- Per-route limits for operator endpoints (slowapi)
- Application components and their background loops

Design Decisions:
- Clean separation: Routes, middleware, and app config are separate
- create_app() lets tests build an app with their own settings and
  components; `app` is the instance uvicorn serves
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from urlshortener.api import endpoints
from urlshortener.api.schemas import HealthResponse
from urlshortener.core.components import AppComponents, build_components
from urlshortener.core.log_config import configure_logging
from urlshortener.core.rate_limit import limiter
from urlshortener.core.setting import Settings, settings as default_settings
from urlshortener.middleware.logging import add_logging_middleware
from urlshortener.middleware.rate_limit import add_rate_limit_middleware

logger = logging.getLogger(__name__)


def create_app(
    app_settings: Optional[Settings] = None,
    components: Optional[AppComponents] = None
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        app_settings: settings to use (module settings by default)
        components: prebuilt components; built on startup when omitted
    """
    app_settings = app_settings or default_settings

    # Title and description are used in auto-generated API documentation
    app = FastAPI(
        title="URL Shortener Service",
        description="URL shortening service with click analytics, rate limiting and link cleanup",
        version=app_settings.SERVICE_VERSION,
        docs_url="/docs",  # Swagger UI documentation
        redoc_url="/redoc",  # ReDoc documentation
    )

    app.state.settings = app_settings
    app.state.components = components

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Last added runs first: CORS -> logging -> rate limit -> routes
    add_rate_limit_middleware(app, exempt_paths=app_settings.RATE_LIMIT_EXEMPT_PATHS)
    add_logging_middleware(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health endpoint defined before router to match before catch-all route
    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(request: Request) -> HealthResponse:
        """
        Health check endpoint for monitoring.

        Returns:
            Health status of the service
        """
        return HealthResponse(
            status="healthy",
            timestamp=datetime.now(timezone.utc),
            version=request.app.state.settings.SERVICE_VERSION,
        )

    app.include_router(endpoints.router)

    @app.on_event("startup")
    async def startup_event():
        """Build components (unless injected) and start background loops."""
        if app.state.components is None:
            app.state.components = build_components(app_settings)
        await app.state.components.start()
        logger.info(f"URL shortener started ({app_settings.ENV_SETTING.value})")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Stop background loops and release connections."""
        if app.state.components is not None:
            await app.state.components.shutdown()

    return app


configure_logging(default_settings.LOG_LEVEL)

app = create_app()
