"""
Link Store

Persistence operations for links on top of the async SQLAlchemy session
factory. Every operation opens its own short-lived session and commits on
its own, so callers (request handlers, the cleanup sweeper) never share a
transaction.

Design Decisions:
- Lookups return None when nothing matches; "not found" is not an error
- All SQLAlchemy failures are wrapped in DatabaseError with the operation name
- A unique-index violation on short_code raises ShortCodeConflictError so
  the link service can retry code generation
- Cleanup queries return ids only and are bounded by a limit, so a sweep
  never loads an unbounded candidate set into memory
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Iterable, List, Optional, Set

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from urlshortener.core.exceptions import DatabaseError, ShortCodeConflictError
from urlshortener.db.models import Link

logger = logging.getLogger(__name__)


class LinkStore:
    """
    Durable key -> record store for links.

    Args:
        session_maker: async session factory bound to the application engine
    """

    def __init__(self, session_maker: async_sessionmaker):
        self.session_maker = session_maker

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        async with self.session_maker() as session:
            try:
                yield session
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Link store operation '{operation}' failed: {e}", exc_info=True)
                raise DatabaseError(f"{operation} failed: {e}", original_error=e) from e

    async def insert(self, link: Link) -> Link:
        async with self._session("insert") as session:
            session.add(link)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                if "short_code" in str(e.orig):
                    raise ShortCodeConflictError(link.short_code, original_error=e) from e
                raise
            return link

    async def update(self, link: Link) -> Link:
        async with self._session("update") as session:
            merged = await session.merge(link)
            await session.commit()
            return merged

    async def find_by_code(self, short_code: str, active_only: bool = True) -> Optional[Link]:
        statement = select(Link).where(Link.short_code == short_code)
        if active_only:
            statement = statement.where(Link.is_active.is_(True))
        async with self._session("find_by_code") as session:
            result = await session.execute(statement.limit(1))
            return result.scalars().first()

    async def find_by_url_active(self, original_url: str) -> Optional[Link]:
        statement = (
            select(Link)
            .where(Link.original_url == original_url)
            .where(Link.is_active.is_(True))
            .order_by(Link.created_at)
            .limit(1)
        )
        async with self._session("find_by_url_active") as session:
            result = await session.execute(statement)
            return result.scalars().first()

    async def find_by_id(self, link_id: str) -> Optional[Link]:
        async with self._session("find_by_id") as session:
            return await session.get(Link, link_id)

    async def count(self) -> int:
        return await self._count("count")

    async def count_active(self) -> int:
        return await self._count("count_active", Link.is_active.is_(True))

    async def count_expired_active(self, now: datetime) -> int:
        return await self._count("count_expired_active", *self._expired_active_clauses(now))

    async def count_old_inactive(self, cutoff: datetime) -> int:
        return await self._count("count_old_inactive", *self._old_inactive_clauses(cutoff))

    async def _count(self, operation: str, *clauses) -> int:
        statement = select(func.count()).select_from(Link)
        for clause in clauses:
            statement = statement.where(clause)
        async with self._session(operation) as session:
            result = await session.execute(statement)
            return result.scalar_one()

    async def codes_existing(self, candidate_codes: Iterable[str]) -> Set[str]:
        """
        Return the subset of candidate codes already held by any row.

        Inactive rows count: a code is never reused while a row holds it.
        """
        codes = list(set(candidate_codes))
        if not codes:
            return set()
        statement = select(Link.short_code).where(Link.short_code.in_(codes))
        async with self._session("codes_existing") as session:
            result = await session.execute(statement)
            return set(result.scalars().all())

    @staticmethod
    def _expired_active_clauses(now: datetime):
        return (
            Link.is_active.is_(True),
            Link.expires_at.is_not(None),
            Link.expires_at < now,
        )

    @staticmethod
    def _old_inactive_clauses(cutoff: datetime):
        return (
            Link.is_active.is_(False),
            Link.created_at < cutoff,
        )

    async def expired_active_ids(self, now: datetime, limit: int) -> List[str]:
        """Ids of up to `limit` active links whose expiration is before `now`."""
        return await self._ids("expired_active_ids", limit, *self._expired_active_clauses(now))

    async def old_inactive_ids(self, cutoff: datetime, limit: int) -> List[str]:
        """Ids of up to `limit` soft-deleted links created before `cutoff`."""
        return await self._ids("old_inactive_ids", limit, *self._old_inactive_clauses(cutoff))

    async def _ids(self, operation: str, limit: int, *clauses) -> List[str]:
        statement = select(Link.id)
        for clause in clauses:
            statement = statement.where(clause)
        statement = statement.order_by(Link.created_at).limit(limit)
        async with self._session(operation) as session:
            result = await session.execute(statement)
            return list(result.scalars().all())

    async def delete_by_ids(self, link_ids: List[str]) -> int:
        """Physically delete the given rows in one transaction; returns rows removed."""
        if not link_ids:
            return 0
        async with self._session("delete_by_ids") as session:
            result = await session.execute(delete(Link).where(Link.id.in_(link_ids)))
            await session.commit()
            return result.rowcount or 0
