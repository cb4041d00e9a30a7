"""
Link Service

This service handles the core business logic for links:
- Creating links (validation, normalization, deduplication, code generation)
- Reading links by short code through the read-through cache
- Soft-deleting links

Design Decisions:
- Results, not exceptions: create/delete return an OperationResult and never
  raise past this boundary; storage failures become ERROR results
- Idempotent creation: with deduplication enabled, shortening a URL that
  already has an active link returns that link (optionally refreshing its
  expiration) instead of creating a second one
- Read-through cache: lookups hit the cache first and populate it on a miss
- Two-phase deletion: delete only flips is_active; rows are removed later
  by the cleanup service
- Expiry is NOT checked here; an expired link is still a valid record and
  only the redirect path refuses to follow it
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from urlshortener.core.exceptions import InvalidURLError, ShortCodeConflictError
from urlshortener.core.normalization import UrlNormalizer
from urlshortener.core.validators import UrlValidator
from urlshortener.db.link_store import LinkStore
from urlshortener.db.models import Link, as_utc, new_link_id, utcnow
from urlshortener.services.code_generator import ShortCodeGenerator
from urlshortener.services.dto import LinkDTO, OperationResult, OperationStatus
from urlshortener.services.link_cache import LinkCache

logger = logging.getLogger(__name__)

# Insert attempts when the unique index rejects a freshly generated code
MAX_INSERT_ATTEMPTS = 3


@dataclass(frozen=True)
class DeduplicationOptions:
    enabled: bool = True
    refresh_expiration: bool = True
    normalize_urls: bool = True

    @classmethod
    def from_settings(cls, settings) -> "DeduplicationOptions":
        return cls(
            enabled=settings.DEDUP_ENABLED,
            refresh_expiration=settings.DEDUP_REFRESH_EXPIRATION,
            normalize_urls=settings.DEDUP_NORMALIZE_URLS,
        )


class LinkService:
    """
    Orchestrates the code generator, link cache and link store.

    Separated from the API layer for testability; every collaborator is
    passed in, nothing is looked up globally.
    """

    def __init__(
        self,
        store: LinkStore,
        cache: LinkCache,
        code_generator: ShortCodeGenerator,
        validator: UrlValidator,
        normalizer: UrlNormalizer,
        base_url: str,
        dedup: DeduplicationOptions = DeduplicationOptions(),
        clock: Callable[[], datetime] = utcnow
    ):
        self.store = store
        self.cache = cache
        self.code_generator = code_generator
        self.validator = validator
        self.normalizer = normalizer
        self.base_url = base_url
        self.dedup = dedup
        self.clock = clock

    def _to_dto(self, link: Link) -> LinkDTO:
        return LinkDTO.from_link(link, self.base_url)

    async def create_link(
        self,
        original_url: str,
        expiration_date: Optional[datetime] = None
    ) -> OperationResult:
        """
        Create a short link, or return the existing active link for the URL.

        Args:
            original_url: The long URL to shorten
            expiration_date: Optional expiration; naive values are taken as UTC

        Returns:
            OperationResult with status SUCCESS (result = LinkDTO),
            INVALID_FORMAT or ERROR (error_message set)
        """
        logger.info(f"Creating link for URL: {original_url}")

        expiration_date = as_utc(expiration_date)

        try:
            self.validator.validate(original_url)

            url = self.normalizer.normalize(original_url) if self.dedup.normalize_urls else original_url

            if self.dedup.enabled:
                existing = await self.store.find_by_url_active(url)
                if existing is not None:
                    return OperationResult(
                        status=OperationStatus.SUCCESS,
                        result=await self._reuse_existing(existing, expiration_date)
                    )

            link = await self._insert_with_unique_code(url, expiration_date)
            dto = self._to_dto(link)
            self.cache.set(link.short_code, dto)

            logger.info(f"Successfully created new link: {link.short_code} for URL: {url}")
            return OperationResult(status=OperationStatus.SUCCESS, result=dto)

        except InvalidURLError as e:
            logger.warning(f"Invalid URL format provided: {original_url}")
            return OperationResult(status=OperationStatus.INVALID_FORMAT, error_message=e.reason)

        except Exception as e:
            logger.error(f"Error creating link for URL: {original_url}: {e}", exc_info=True)
            return OperationResult(status=OperationStatus.ERROR, error_message=str(e))

    async def _reuse_existing(self, existing: Link, expiration_date: Optional[datetime]) -> LinkDTO:
        logger.info(
            f"Found existing link for URL: {existing.original_url}, ShortCode: {existing.short_code}"
        )
        if self.dedup.refresh_expiration and expiration_date != existing.expires_at:
            logger.info(f"Updating expiration date for existing link: {existing.short_code}")
            existing.expires_at = expiration_date
            existing = await self.store.update(existing)

        dto = self._to_dto(existing)
        self.cache.set(existing.short_code, dto)
        return dto

    async def _insert_with_unique_code(self, url: str, expiration_date: Optional[datetime]) -> Link:
        existing_count = await self.store.count()

        for attempt in range(1, MAX_INSERT_ATTEMPTS + 1):
            short_code = await self.code_generator.generate_unique_code(existing_count)
            link = Link(
                id=new_link_id(),
                original_url=url,
                short_code=short_code,
                created_at=self.clock(),
                expires_at=expiration_date,
                is_active=True,
            )
            try:
                return await self.store.insert(link)
            except ShortCodeConflictError:
                if attempt == MAX_INSERT_ATTEMPTS:
                    raise
                logger.warning(
                    f"Short code {short_code} was taken at insert time, regenerating "
                    f"(attempt {attempt}/{MAX_INSERT_ATTEMPTS})"
                )

    async def get_by_short_code(self, short_code: str) -> Optional[LinkDTO]:
        """
        Retrieve an active link by short code.

        Returns:
            LinkDTO if an active link holds the code, None otherwise

        Raises:
            DatabaseError: if the store lookup fails on a cache miss
        """
        cached = self.cache.get(short_code)
        if cached is not None:
            return cached

        link = await self.store.find_by_code(short_code, active_only=True)
        if link is None:
            logger.info(f"Link not found: {short_code}")
            return None

        logger.debug(f"Link found in database: {short_code}, caching for future requests")
        dto = self._to_dto(link)
        self.cache.set(short_code, dto)
        return dto

    async def delete_link(self, link_id: str) -> OperationResult:
        """
        Soft-delete a link and evict it from the cache.

        Returns:
            OperationResult with status SUCCESS, NOT_FOUND or ERROR
        """
        logger.info(f"Deleting link with ID: {link_id}")

        try:
            link = await self.store.find_by_id(link_id)
            if link is None:
                logger.warning(f"Link not found for deletion: {link_id}")
                return OperationResult(status=OperationStatus.NOT_FOUND)

            link.is_active = False
            await self.store.update(link)
            self.cache.remove(link.short_code)

            logger.info(f"Link deleted successfully: {link.short_code}")
            return OperationResult(status=OperationStatus.SUCCESS, result=True)

        except Exception as e:
            logger.error(f"Error deleting link with ID: {link_id}: {e}", exc_info=True)
            return OperationResult(status=OperationStatus.ERROR, error_message=str(e))
