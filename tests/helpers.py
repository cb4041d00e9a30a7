"""
Test doubles shared by the test modules.
"""

import json
from collections import Counter
from datetime import datetime, timezone

import httpx

from urlshortener.db.link_store import LinkStore
from urlshortener.services.dto import LinkDTO

TEST_BASE_URL = "https://sho.rt"


class CountingLinkStore(LinkStore):
    """LinkStore that records how often each operation hits the database."""

    def __init__(self, session_maker):
        super().__init__(session_maker)
        self.calls = Counter()

    async def insert(self, link):
        self.calls["insert"] += 1
        return await super().insert(link)

    async def find_by_code(self, short_code, active_only=True):
        self.calls["find_by_code"] += 1
        return await super().find_by_code(short_code, active_only=active_only)

    async def update(self, link):
        self.calls["update"] += 1
        return await super().update(link)

    async def count(self):
        self.calls["count"] += 1
        return await super().count()

    async def delete_by_ids(self, link_ids):
        self.calls["delete_by_ids"] += 1
        return await super().delete_by_ids(link_ids)


class FakeAnalytics:
    """In-process stand-in for the analytics service."""

    def __init__(self):
        self.clicks = []
        self.click_status = 200
        self.stats_status = 200

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST" and request.url.path == "/api/analytics/clicks":
            self.clicks.append(json.loads(request.content))
            return httpx.Response(self.click_status)
        if request.method == "GET" and request.url.path.endswith("/stats"):
            if self.stats_status != 200:
                return httpx.Response(self.stats_status)
            return httpx.Response(200, json={"totalClicks": len(self.clicks)})
        return httpx.Response(404)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class FakeTimer:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_dto(short_code: str = "abc123", original_url: str = "https://example.com/page") -> LinkDTO:
    return LinkDTO(
        id="00000000-0000-0000-0000-000000000001",
        original_url=original_url,
        short_code=short_code,
        short_url=f"{TEST_BASE_URL}/{short_code}",
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )
