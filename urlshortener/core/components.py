"""
Application Components

This module builds and owns the long-lived objects of one application
instance: engine, session factory, store, cache, services, background
loops and HTTP clients.

Design:
- Built once on application startup and stored on app.state
- Nothing is a module global; tests build their own set against an
  in-memory database and a mock analytics transport
- start() launches the background loops, shutdown() stops them and
  releases clients and connections in reverse order
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from urlshortener.core.normalization import UrlNormalizer
from urlshortener.core.setting import Settings
from urlshortener.core.validators import UrlValidator
from urlshortener.db.link_store import LinkStore
from urlshortener.db.session import create_engine_and_sessionmaker, create_tables
from urlshortener.services.analytics_client import AnalyticsClient
from urlshortener.services.background_tasks import BackgroundTaskTracker
from urlshortener.services.cleanup_service import LinkCleanupService
from urlshortener.services.code_generator import CodeLengthPolicy, ShortCodeGenerator
from urlshortener.services.link_cache import LinkCache
from urlshortener.services.link_service import DeduplicationOptions, LinkService
from urlshortener.services.rate_limiter import SlidingWindowRateLimiter
from urlshortener.services.redirect_service import RedirectService
from urlshortener.services.stats_service import StatsService

logger = logging.getLogger(__name__)


@dataclass
class AppComponents:
    settings: Settings
    engine: AsyncEngine
    session_maker: async_sessionmaker
    store: LinkStore
    cache: LinkCache
    code_generator: ShortCodeGenerator
    link_service: LinkService
    analytics_client: AnalyticsClient
    task_tracker: BackgroundTaskTracker
    redirect_service: RedirectService
    stats_service: StatsService
    rate_limiter: SlidingWindowRateLimiter
    cleanup_service: LinkCleanupService

    async def start(self) -> None:
        """Create tables if configured and launch the background loops."""
        if self.settings.AUTO_CREATE_TABLES:
            await create_tables(self.engine)
            logger.info("Database tables ensured")

        if self.settings.RATE_LIMIT_ENABLED:
            self.rate_limiter.start()
        if self.settings.CLEANUP_ENABLED:
            self.cleanup_service.start()

    async def shutdown(self) -> None:
        """Stop loops, drain click notifications, close clients and the engine."""
        await self.cleanup_service.stop()
        await self.rate_limiter.stop()
        await self.task_tracker.shutdown()
        await self.analytics_client.aclose()
        await self.engine.dispose()
        logger.info("Application components shut down")


def build_components(
    settings: Settings,
    analytics_transport: Optional[httpx.AsyncBaseTransport] = None
) -> AppComponents:
    """
    Wire every component from settings.

    Args:
        settings: application settings
        analytics_transport: optional httpx transport for the analytics client
    """
    engine, session_maker = create_engine_and_sessionmaker(settings.DATABASE_URL)
    store = LinkStore(session_maker)
    cache = LinkCache.from_settings(settings)

    code_generator = ShortCodeGenerator(
        store=store,
        length_policy=CodeLengthPolicy.from_settings(settings),
        alphabet=settings.LINK_ALLOWED_CHARACTERS,
        batch_size=settings.LINK_BATCH_SIZE,
        max_retries=settings.LINK_MAX_RETRIES,
    )

    link_service = LinkService(
        store=store,
        cache=cache,
        code_generator=code_generator,
        validator=UrlValidator(timeout=settings.URL_VALIDATION_TIMEOUT_SECONDS),
        normalizer=UrlNormalizer(),
        base_url=settings.BASE_URL,
        dedup=DeduplicationOptions.from_settings(settings),
    )

    analytics_client = AnalyticsClient(
        base_url=settings.ANALYTICS_BASE_URL,
        timeout=settings.ANALYTICS_TIMEOUT_SECONDS,
        transport=analytics_transport,
    )
    task_tracker = BackgroundTaskTracker()

    return AppComponents(
        settings=settings,
        engine=engine,
        session_maker=session_maker,
        store=store,
        cache=cache,
        code_generator=code_generator,
        link_service=link_service,
        analytics_client=analytics_client,
        task_tracker=task_tracker,
        redirect_service=RedirectService(link_service, analytics_client, task_tracker),
        stats_service=StatsService(link_service, analytics_client),
        rate_limiter=SlidingWindowRateLimiter.from_settings(settings),
        cleanup_service=LinkCleanupService.from_settings(store, settings),
    )
