"""
Tests for the link service: creation, deduplication, caching and soft delete.
"""

from datetime import datetime, timedelta, timezone

import pytest

from helpers import TEST_BASE_URL, FakeAnalytics
from urlshortener.core.exceptions import DatabaseError, InvalidURLError
from urlshortener.core.normalization import UrlNormalizer
from urlshortener.core.request_info import ClientMetadata
from urlshortener.core.validators import UrlValidator
from urlshortener.services.analytics_client import AnalyticsClient
from urlshortener.services.background_tasks import BackgroundTaskTracker
from urlshortener.services.dto import OperationStatus
from urlshortener.services.link_service import DeduplicationOptions, LinkService
from urlshortener.services.redirect_service import RedirectOutcome, RedirectService

EXPIRES_2030 = datetime(2030, 1, 1, tzinfo=timezone.utc)
EXPIRES_2031 = datetime(2031, 6, 1, tzinfo=timezone.utc)


def service_with(store, link_cache, code_generator, **kwargs) -> LinkService:
    return LinkService(
        store=store,
        cache=link_cache,
        code_generator=code_generator,
        validator=UrlValidator(),
        normalizer=UrlNormalizer(),
        base_url=TEST_BASE_URL,
        **kwargs
    )


class ScriptedGenerator:
    """Hands out a fixed sequence of codes."""

    def __init__(self, codes):
        self.codes = list(codes)

    async def generate_unique_code(self, existing_count):
        return self.codes.pop(0)


class BrokenLookupStore:
    """Store whose reads fail like a lost database connection."""

    async def find_by_url_active(self, original_url):
        raise DatabaseError("connection lost")

    async def find_by_id(self, link_id):
        raise DatabaseError("connection lost")

    async def count(self):
        raise DatabaseError("connection lost")


class TestCreateLink:

    @pytest.mark.asyncio
    async def test_create_returns_link(self, link_service):
        result = await link_service.create_link("https://example.com/articles/1")

        assert result.status == OperationStatus.SUCCESS
        link = result.result
        assert len(link.short_code) == 6
        assert link.short_url == f"{TEST_BASE_URL}/{link.short_code}"
        assert link.original_url == "https://example.com/articles/1"
        assert link.is_active
        assert link.expires_at is None

    @pytest.mark.asyncio
    async def test_codes_are_unique(self, link_service, store):
        codes = set()
        for i in range(25):
            result = await link_service.create_link(f"https://example.com/page/{i}")
            codes.add(result.result.short_code)

        assert len(codes) == 25
        assert await store.count() == 25

    @pytest.mark.asyncio
    async def test_invalid_url_is_rejected(self, link_service, store):
        for url in ("javascript:alert(1)", "ftp://example.com/file", "not-a-url", ""):
            result = await link_service.create_link(url)
            assert result.status == OperationStatus.INVALID_FORMAT, url
            assert result.error_message

        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_validator_rejection_becomes_invalid_format(self, store, link_cache, code_generator):
        class RejectingValidator(UrlValidator):
            def validate(self, url):
                raise InvalidURLError(url, reason="Blocked domain")

        service = LinkService(
            store=store,
            cache=link_cache,
            code_generator=code_generator,
            validator=RejectingValidator(),
            normalizer=UrlNormalizer(),
            base_url=TEST_BASE_URL,
        )

        result = await service.create_link("https://example.com/blocked")

        assert result.status == OperationStatus.INVALID_FORMAT
        assert result.error_message == "Blocked domain"
        assert store.calls["insert"] == 0

    @pytest.mark.asyncio
    async def test_too_long_url_is_rejected(self, link_service):
        url = "https://example.com/" + "a" * 2100
        result = await link_service.create_link(url)
        assert result.status == OperationStatus.INVALID_FORMAT

    @pytest.mark.asyncio
    async def test_stores_normalized_url(self, link_service):
        result = await link_service.create_link("HTTPS://Example.COM:443/")
        assert result.result.original_url == "https://example.com"

    @pytest.mark.asyncio
    async def test_storage_failure_becomes_error_result(self, link_cache, code_generator):
        service = service_with(BrokenLookupStore(), link_cache, code_generator)

        result = await service.create_link("https://example.com/down")

        assert result.status == OperationStatus.ERROR
        assert "connection lost" in result.error_message

    @pytest.mark.asyncio
    async def test_regenerates_code_taken_at_insert_time(self, link_service, store, link_cache):
        first = await link_service.create_link("https://example.com/first")
        taken = first.result.short_code
        service = service_with(store, link_cache, ScriptedGenerator([taken, "Fresh1"]))

        result = await service.create_link("https://example.com/second")

        assert result.status == OperationStatus.SUCCESS
        assert result.result.short_code == "Fresh1"


class TestDeduplication:

    @pytest.mark.asyncio
    async def test_same_url_returns_same_link(self, link_service, store):
        first = await link_service.create_link("https://example.com/dup")
        second = await link_service.create_link("https://example.com/dup")

        assert first.result.short_code == second.result.short_code
        assert first.result.id == second.result.id
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_equivalent_urls_share_a_link(self, link_service, store):
        first = await link_service.create_link("https://example.com")
        second = await link_service.create_link("HTTPS://EXAMPLE.com:443/")

        assert first.result.short_code == second.result.short_code
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_dedup_refreshes_expiration(self, link_service, store):
        first = await link_service.create_link("https://example.com/exp", EXPIRES_2030)
        second = await link_service.create_link("https://example.com/exp", EXPIRES_2031)

        assert second.result.short_code == first.result.short_code
        assert second.result.expires_at == EXPIRES_2031

        stored = await store.find_by_id(first.result.id)
        assert stored.expires_at == EXPIRES_2031
        # The cached copy carries the refreshed value as well
        assert (await link_service.get_by_short_code(first.result.short_code)).expires_at == EXPIRES_2031

    @pytest.mark.asyncio
    async def test_dedup_without_refresh_keeps_expiration(self, store, link_cache, code_generator):
        service = service_with(
            store, link_cache, code_generator,
            dedup=DeduplicationOptions(refresh_expiration=False)
        )
        await service.create_link("https://example.com/keep", EXPIRES_2030)
        second = await service.create_link("https://example.com/keep", EXPIRES_2031)

        assert second.result.expires_at == EXPIRES_2030

    @pytest.mark.asyncio
    async def test_dedup_disabled_creates_new_links(self, store, link_cache, code_generator):
        service = service_with(
            store, link_cache, code_generator,
            dedup=DeduplicationOptions(enabled=False)
        )
        first = await service.create_link("https://example.com/twice")
        second = await service.create_link("https://example.com/twice")

        assert first.result.short_code != second.result.short_code
        assert await store.count() == 2

    @pytest.mark.asyncio
    async def test_deleted_link_is_not_reused(self, link_service):
        first = await link_service.create_link("https://example.com/again")
        await link_service.delete_link(first.result.id)

        second = await link_service.create_link("https://example.com/again")

        assert second.result.short_code != first.result.short_code


class TestNaiveExpiration:
    """Expirations without an offset are treated as UTC inside the service."""

    @pytest.mark.asyncio
    async def test_naive_expiration_is_stored_as_utc(self, link_service, store):
        result = await link_service.create_link("https://example.com/naive", datetime(2030, 1, 1))

        assert result.result.expires_at == EXPIRES_2030
        assert (await store.find_by_id(result.result.id)).expires_at == EXPIRES_2030

    @pytest.mark.asyncio
    async def test_naive_past_expiration_redirects_as_gone(self, link_service):
        yesterday = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(days=1)
        created = (await link_service.create_link("https://example.com/naive-past", yesterday)).result

        fake = FakeAnalytics()
        tracker = BackgroundTaskTracker()
        analytics = AnalyticsClient("http://analytics.test", timeout=5, transport=fake.transport)
        service = RedirectService(link_service, analytics, tracker)

        result = await service.resolve(created.short_code, ClientMetadata())
        await tracker.shutdown(timeout=0.1)
        await analytics.aclose()

        assert result.outcome is RedirectOutcome.GONE
        assert fake.clicks == []

    @pytest.mark.asyncio
    async def test_repeat_create_with_same_naive_expiration_does_not_update(self, link_service, store):
        first = await link_service.create_link("https://example.com/naive-repeat", datetime(2030, 1, 1))
        second = await link_service.create_link("https://example.com/naive-repeat", datetime(2030, 1, 1))

        assert second.result.short_code == first.result.short_code
        assert store.calls["update"] == 0


class TestLookup:

    @pytest.mark.asyncio
    async def test_lookup_after_create_does_not_hit_store(self, link_service, store):
        created = await link_service.create_link("https://example.com/cached")

        link = await link_service.get_by_short_code(created.result.short_code)

        assert link == created.result
        assert store.calls["find_by_code"] == 0

    @pytest.mark.asyncio
    async def test_cache_miss_reads_store_once(self, link_service, store, link_cache):
        created = await link_service.create_link("https://example.com/miss")
        link_cache.clear()

        first = await link_service.get_by_short_code(created.result.short_code)
        second = await link_service.get_by_short_code(created.result.short_code)

        assert first == second == created.result
        assert store.calls["find_by_code"] == 1

    @pytest.mark.asyncio
    async def test_unknown_code(self, link_service):
        assert await link_service.get_by_short_code("zzzzzz") is None

    @pytest.mark.asyncio
    async def test_expired_link_is_still_returned(self, link_service, link_cache):
        past = datetime.now(timezone.utc) - timedelta(days=1)
        created = await link_service.create_link("https://example.com/old", past)
        link_cache.clear()

        link = await link_service.get_by_short_code(created.result.short_code)

        assert link is not None
        assert link.is_expired(datetime.now(timezone.utc))


class TestDeleteLink:

    @pytest.mark.asyncio
    async def test_soft_delete(self, link_service, store):
        created = await link_service.create_link("https://example.com/delete-me")

        result = await link_service.delete_link(created.result.id)

        assert result.status == OperationStatus.SUCCESS
        assert await link_service.get_by_short_code(created.result.short_code) is None

        row = await store.find_by_code(created.result.short_code, active_only=False)
        assert row is not None
        assert row.is_active is False

    @pytest.mark.asyncio
    async def test_delete_evicts_cache(self, link_service, link_cache):
        created = await link_service.create_link("https://example.com/evict")
        await link_service.delete_link(created.result.id)
        assert link_cache.get(created.result.short_code) is None

    @pytest.mark.asyncio
    async def test_delete_unknown_id(self, link_service):
        result = await link_service.delete_link("6f1c2d7e-0000-4000-8000-000000000000")
        assert result.status == OperationStatus.NOT_FOUND

    @pytest.mark.asyncio
    async def test_delete_storage_failure(self, link_cache, code_generator):
        service = service_with(BrokenLookupStore(), link_cache, code_generator)
        result = await service.delete_link("6f1c2d7e-0000-4000-8000-000000000000")
        assert result.status == OperationStatus.ERROR
