"""
Tests for redirect resolution and fire-and-forget click reporting.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio

from helpers import FakeAnalytics
from urlshortener.core.exceptions import AnalyticsUnavailableError
from urlshortener.core.request_info import ClientMetadata
from urlshortener.services.analytics_client import AnalyticsClient
from urlshortener.services.background_tasks import BackgroundTaskTracker
from urlshortener.services.dto import ClickEvent
from urlshortener.services.redirect_service import RedirectOutcome, RedirectService

CLIENT = ClientMetadata(ip_address="203.0.113.7", user_agent="pytest-agent", referer="https://ref.example.org/")


@pytest_asyncio.fixture
async def tracker():
    task_tracker = BackgroundTaskTracker()
    yield task_tracker
    await task_tracker.shutdown(timeout=0.1)


def analytics_client_for(handler) -> AnalyticsClient:
    return AnalyticsClient("http://analytics.test", timeout=5, transport=httpx.MockTransport(handler))


class TestResolve:

    @pytest.mark.asyncio
    async def test_redirects_and_reports_click(self, link_service, tracker):
        fake = FakeAnalytics()
        service = RedirectService(link_service, analytics_client_for(fake.handler), tracker)
        created = (await link_service.create_link("https://example.com/target")).result

        result = await service.resolve(created.short_code, CLIENT)
        await tracker.drain()

        assert result.outcome is RedirectOutcome.REDIRECT
        assert result.target_url == "https://example.com/target"
        assert len(fake.clicks) == 1
        click = fake.clicks[0]
        assert click["linkId"] == created.id
        assert click["ipAddress"] == "203.0.113.7"
        assert click["userAgent"] == "pytest-agent"
        assert click["referer"] == "https://ref.example.org/"
        assert "original_url" not in click

    @pytest.mark.asyncio
    async def test_unknown_code(self, link_service, tracker):
        fake = FakeAnalytics()
        service = RedirectService(link_service, analytics_client_for(fake.handler), tracker)

        result = await service.resolve("nope42", CLIENT)

        assert result.outcome is RedirectOutcome.NOT_FOUND
        assert result.target_url is None

    @pytest.mark.asyncio
    async def test_expired_link_is_gone_but_retrievable(self, link_service, tracker):
        fake = FakeAnalytics()
        expires = datetime(2030, 1, 1, tzinfo=timezone.utc)
        created = (await link_service.create_link("https://example.com/expiring", expires)).result
        service = RedirectService(
            link_service, analytics_client_for(fake.handler), tracker,
            clock=lambda: expires + timedelta(seconds=1)
        )

        result = await service.resolve(created.short_code, CLIENT)
        await tracker.drain()

        assert result.outcome is RedirectOutcome.GONE
        assert result.target_url is None
        assert fake.clicks == []
        assert await link_service.get_by_short_code(created.short_code) is not None

    @pytest.mark.asyncio
    async def test_expiry_instant_counts_as_gone(self, link_service, tracker):
        fake = FakeAnalytics()
        expires = datetime(2030, 1, 1, tzinfo=timezone.utc)
        created = (await link_service.create_link("https://example.com/edge", expires)).result
        service = RedirectService(link_service, analytics_client_for(fake.handler), tracker, clock=lambda: expires)

        result = await service.resolve(created.short_code, CLIENT)

        assert result.outcome is RedirectOutcome.GONE

    @pytest.mark.asyncio
    async def test_deleted_link_is_not_found(self, link_service, tracker):
        fake = FakeAnalytics()
        service = RedirectService(link_service, analytics_client_for(fake.handler), tracker)
        created = (await link_service.create_link("https://example.com/deleted")).result
        await link_service.delete_link(created.id)

        result = await service.resolve(created.short_code, CLIENT)

        assert result.outcome is RedirectOutcome.NOT_FOUND


class TestAnalyticsIsolation:

    @pytest.mark.asyncio
    async def test_unreachable_analytics_does_not_affect_redirect(self, link_service, tracker):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        service = RedirectService(link_service, analytics_client_for(refuse), tracker)
        created = (await link_service.create_link("https://example.com/isolated")).result

        result = await service.resolve(created.short_code, CLIENT)
        await tracker.drain()

        assert result.outcome is RedirectOutcome.REDIRECT
        assert tracker.pending == 0

    @pytest.mark.asyncio
    async def test_slow_analytics_does_not_delay_redirect(self, link_service, tracker):
        async def hang(request):
            await asyncio.sleep(10)
            return httpx.Response(200)

        service = RedirectService(link_service, analytics_client_for(hang), tracker)
        created = (await link_service.create_link("https://example.com/slow")).result

        result = await asyncio.wait_for(service.resolve(created.short_code, CLIENT), timeout=1)

        assert result.outcome is RedirectOutcome.REDIRECT
        assert tracker.pending == 1

    @pytest.mark.asyncio
    async def test_scheduling_failure_does_not_affect_redirect(self, link_service):
        fake = FakeAnalytics()
        closed_tracker = BackgroundTaskTracker()
        await closed_tracker.shutdown()
        service = RedirectService(link_service, analytics_client_for(fake.handler), closed_tracker)
        created = (await link_service.create_link("https://example.com/closed")).result

        result = await service.resolve(created.short_code, CLIENT)

        assert result.outcome is RedirectOutcome.REDIRECT
        assert fake.clicks == []


class TestAnalyticsClient:

    def click(self) -> ClickEvent:
        return ClickEvent(
            link_id="6f1c2d7e-0000-4000-8000-000000000000",
            original_url="https://example.com/x",
            timestamp=datetime(2026, 1, 1, tzinfo=timezone.utc),
            ip_address="203.0.113.7",
        )

    @pytest.mark.asyncio
    async def test_register_click_success(self):
        fake = FakeAnalytics()
        client = analytics_client_for(fake.handler)

        assert await client.register_click(self.click()) is True
        assert fake.clicks[0]["linkId"] == "6f1c2d7e-0000-4000-8000-000000000000"
        assert fake.clicks[0]["userAgent"] is None
        await client.aclose()

    @pytest.mark.asyncio
    async def test_register_click_error_status(self):
        fake = FakeAnalytics()
        fake.click_status = 500
        client = analytics_client_for(fake.handler)

        assert await client.register_click(self.click()) is False
        await client.aclose()

    @pytest.mark.asyncio
    async def test_get_link_stats(self):
        fake = FakeAnalytics()
        client = analytics_client_for(fake.handler)

        assert await client.get_link_stats("abc") == {"totalClicks": 0}
        await client.aclose()

    @pytest.mark.asyncio
    async def test_get_link_stats_failure_raises(self):
        fake = FakeAnalytics()
        fake.stats_status = 503
        client = analytics_client_for(fake.handler)

        with pytest.raises(AnalyticsUnavailableError) as exc_info:
            await client.get_link_stats("abc")

        assert exc_info.value.status_code == 503
        await client.aclose()
