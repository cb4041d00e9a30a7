"""
Statistics Service

This service handles retrieving click statistics for short links.

Design Decisions:
- Click counting lives in the separate analytics service; this service
  only resolves the short code to a link id and asks analytics for it
- Link information comes from the link service (cache first)
- There is no local fallback: when analytics is unreachable the caller
  gets AnalyticsUnavailableError and the route answers 502
"""

from typing import Any, Dict, Optional

from urlshortener.services.analytics_client import AnalyticsClient
from urlshortener.services.link_service import LinkService


class StatsService:
    """
    Service for retrieving link statistics.

    Combines link data from the link service with aggregate click data
    from the analytics service.
    """

    def __init__(self, link_service: LinkService, analytics_client: AnalyticsClient):
        self.link_service = link_service
        self.analytics_client = analytics_client

    async def get_stats(self, short_code: str) -> Optional[Dict[str, Any]]:
        """
        Get statistics for a short link.

        Returns:
            Dictionary with the link fields and an `analytics` section,
            or None if no active link holds the short code

        Raises:
            AnalyticsUnavailableError: analytics service failed or is down
            DatabaseError: link lookup failed
        """
        link = await self.link_service.get_by_short_code(short_code)
        if link is None:
            return None

        analytics = await self.analytics_client.get_link_stats(link.id)

        return {
            "link_id": link.id,
            "short_code": link.short_code,
            "original_url": link.original_url,
            "created_at": link.created_at.isoformat(),
            "expires_at": link.expires_at.isoformat() if link.expires_at else None,
            "analytics": analytics,
        }
