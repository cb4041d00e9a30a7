"""
Database Session Management with Connection Pooling

This module handles async database connections using SQLAlchemy's async engine.
Uses a database abstraction layer to support different database backends.

Key Features:
- Database abstraction: Easy to switch between SQLite, PostgreSQL, etc.
- Connection pooling: Configured per database type
- Async session management: Proper async context management

The engine and session factory are built at application startup and owned
by the application components, so tests can point them at an in-memory
database without touching module globals.
"""

from typing import Tuple

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel

from urlshortener.db import models  # noqa: F401  (registers tables on SQLModel.metadata)
from urlshortener.db.sqlite_adapter import get_database_adapter


def create_engine_and_sessionmaker(database_url: str) -> Tuple[AsyncEngine, async_sessionmaker]:
    """
    Build the async engine and session factory for a connection string.

    Sessions do not expire objects on commit, so records stay readable
    after the session that loaded them is closed.
    """
    db_adapter = get_database_adapter(database_url)
    engine = db_adapter.create_engine(database_url)

    session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Prevents SQLAlchemy from expiring objects after commit
        autoflush=False,
    )
    return engine, session_maker


async def create_tables(engine: AsyncEngine) -> None:
    """Create missing tables (local runs and tests; production uses alembic)."""
    async with engine.begin() as connection:
        await connection.run_sync(SQLModel.metadata.create_all)
