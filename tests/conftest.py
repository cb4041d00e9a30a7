"""
Shared test fixtures.

Every test gets its own in-memory SQLite database (StaticPool keeps the
single connection alive), a call-counting store, and a fake analytics
service behind httpx.MockTransport.
"""

import random

import pytest
import pytest_asyncio

from helpers import TEST_BASE_URL, CountingLinkStore, FakeAnalytics
from urlshortener.core.components import build_components
from urlshortener.core.normalization import UrlNormalizer
from urlshortener.core.rate_limit import limiter
from urlshortener.core.setting import Settings
from urlshortener.core.validators import UrlValidator
from urlshortener.db.session import create_engine_and_sessionmaker, create_tables
from urlshortener.services.code_generator import CodeLengthPolicy, ShortCodeGenerator
from urlshortener.services.link_cache import LinkCache
from urlshortener.services.link_service import LinkService

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def session_maker():
    engine, session_maker = create_engine_and_sessionmaker(TEST_DATABASE_URL)
    await create_tables(engine)
    yield session_maker
    await engine.dispose()


@pytest.fixture
def store(session_maker):
    return CountingLinkStore(session_maker)


@pytest.fixture
def link_cache():
    return LinkCache(absolute_seconds=1800, sliding_seconds=300)


@pytest.fixture
def code_generator(store):
    return ShortCodeGenerator(
        store=store,
        length_policy=CodeLengthPolicy([(100_000, 6), (1_000_000, 7), (10_000_000, 8)], 9),
        rng=random.Random(1234),
    )


@pytest.fixture
def link_service(store, link_cache, code_generator):
    return LinkService(
        store=store,
        cache=link_cache,
        code_generator=code_generator,
        validator=UrlValidator(),
        normalizer=UrlNormalizer(),
        base_url=TEST_BASE_URL,
    )


@pytest.fixture
def fake_analytics():
    return FakeAnalytics()


@pytest.fixture
def test_settings():
    return Settings(
        DATABASE_URL=TEST_DATABASE_URL,
        BASE_URL=TEST_BASE_URL,
        AUTO_CREATE_TABLES=True,
        RATE_LIMIT_ENABLED=False,
        CLEANUP_ENABLED=False,
        ANALYTICS_BASE_URL="http://analytics.test",
    )


@pytest_asyncio.fixture
async def components(test_settings, fake_analytics):
    app_components = build_components(test_settings, analytics_transport=fake_analytics.transport)
    await app_components.start()
    yield app_components
    await app_components.shutdown()


@pytest.fixture(autouse=True)
def reset_route_limits():
    limiter.reset()
    yield
