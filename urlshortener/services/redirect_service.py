"""
Redirect Service

This service handles URL redirection logic:
- resolves the short code through the link service (cache first)
- refuses expired links with a GONE outcome
- reports the click to the analytics service without waiting for it

Design Decisions:
- The click notification runs as a tracked background task that is not
  bound to the request; its failure or slowness never changes the outcome
- The endpoint copies client metadata out of the request before calling
  resolve(), so the background task only ever sees plain data
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from urlshortener.core.request_info import ClientMetadata
from urlshortener.db.models import utcnow
from urlshortener.services.analytics_client import AnalyticsClient
from urlshortener.services.background_tasks import BackgroundTaskTracker, register_click_background
from urlshortener.services.dto import ClickEvent, LinkDTO
from urlshortener.services.link_service import LinkService

logger = logging.getLogger(__name__)


class RedirectOutcome(str, Enum):
    REDIRECT = "redirect"
    NOT_FOUND = "not_found"
    GONE = "gone"


@dataclass(frozen=True)
class RedirectResult:
    outcome: RedirectOutcome
    link: Optional[LinkDTO] = None

    @property
    def target_url(self) -> Optional[str]:
        if self.outcome is RedirectOutcome.REDIRECT and self.link is not None:
            return self.link.original_url
        return None


class RedirectService:
    """
    Service for handling URL redirections.
    """

    def __init__(
        self,
        link_service: LinkService,
        analytics_client: AnalyticsClient,
        task_tracker: BackgroundTaskTracker,
        clock: Callable[[], datetime] = utcnow
    ):
        self.link_service = link_service
        self.analytics_client = analytics_client
        self.task_tracker = task_tracker
        self.clock = clock

    async def resolve(self, short_code: str, client: ClientMetadata) -> RedirectResult:
        """
        Resolve a short code for redirection.

        Args:
            short_code: The short code to look up
            client: Metadata already copied out of the request

        Returns:
            RedirectResult with REDIRECT, NOT_FOUND or GONE
        """
        link = await self.link_service.get_by_short_code(short_code)
        if link is None:
            return RedirectResult(RedirectOutcome.NOT_FOUND)

        now = self.clock()
        if link.is_expired(now):
            logger.info(f"Link {short_code} expired at {link.expires_at.isoformat()}")
            return RedirectResult(RedirectOutcome.GONE, link)

        click = ClickEvent(
            link_id=link.id,
            original_url=link.original_url,
            timestamp=now,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
            referer=client.referer,
        )
        self._notify_analytics(click)

        return RedirectResult(RedirectOutcome.REDIRECT, link)

    def _notify_analytics(self, click: ClickEvent) -> None:
        try:
            self.task_tracker.spawn(register_click_background, self.analytics_client, click)
        except Exception as e:
            logger.warning(f"Could not schedule click registration for link {click.link_id}: {e}")
