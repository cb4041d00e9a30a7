"""
Analytics Service Client

HTTP client for the companion click-analytics service.

- register_click: best effort. Returns False on any failure (HTTP error
  status, timeout, connection error) and never raises, so the redirect
  path cannot be affected by the analytics service.
- get_link_stats: used by the stats endpoint. There is no graceful
  fallback for it, so failures raise AnalyticsUnavailableError.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from urlshortener.core.exceptions import AnalyticsUnavailableError
from urlshortener.services.dto import ClickEvent

logger = logging.getLogger(__name__)

CLICKS_PATH = "/api/analytics/clicks"
LINK_STATS_PATH = "/api/analytics/links/{link_id}/stats"


class AnalyticsClient:
    """
    Thin async wrapper around the analytics HTTP API.

    Args:
        base_url: analytics service root, e.g. http://analytics:8001
        timeout: per-request timeout in seconds
        transport: optional httpx transport (tests pass httpx.MockTransport)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def register_click(self, click: ClickEvent) -> bool:
        logger.info(f"Registering click for link: {click.link_id}")
        payload = click.model_dump(mode="json", by_alias=True)
        try:
            response = await self._client.post(CLICKS_PATH, json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Error registering click for link {click.link_id}: {e!r}")
            return False

        if response.is_success:
            logger.info(f"Click registered for link: {click.link_id} ({click.original_url})")
            return True

        logger.warning(
            f"Failed to register click for link: {click.link_id}, status: {response.status_code}"
        )
        return False

    async def get_link_stats(self, link_id: str) -> Dict[str, Any]:
        """
        Fetch aggregate click statistics for a link.

        Raises:
            AnalyticsUnavailableError: on transport errors or non-2xx responses
        """
        try:
            response = await self._client.get(LINK_STATS_PATH.format(link_id=link_id))
        except httpx.HTTPError as e:
            raise AnalyticsUnavailableError(repr(e)) from e

        if not response.is_success:
            raise AnalyticsUnavailableError(
                f"GET stats for {link_id} returned {response.status_code}",
                status_code=response.status_code
            )

        try:
            return response.json()
        except ValueError as e:
            raise AnalyticsUnavailableError(f"invalid JSON in stats response: {e}") from e

    async def aclose(self) -> None:
        await self._client.aclose()
