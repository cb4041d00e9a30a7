"""
SQLite Database Adapter

This module implements the DatabaseAdapter interface for SQLite.
All SQLite-specific configuration and behavior is encapsulated here.

SQLite is a file-based database that's perfect for:
- Local development
- Testing (in-memory databases)
- Single-instance deployments

Key characteristics:
- File-based (single .db file) or in-memory
- No server required
- Single writer at a time (file locking)
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool, Pool, StaticPool

from urlshortener.db.interface import DatabaseAdapter


def is_memory_url(database_url: str) -> bool:
    return ":memory:" in database_url or database_url.rstrip("/").endswith("sqlite+aiosqlite:")


class SQLiteAdapter(DatabaseAdapter):
    """
    SQLite database adapter implementation.

    File databases get a NullPool (a fresh connection per session). In-memory
    databases live only as long as their connection, so they share a single
    connection through StaticPool.
    """

    def create_engine(self, database_url: str, **kwargs) -> AsyncEngine:
        """
        Create SQLite async engine with appropriate configuration.

        Args:
            database_url: SQLite connection string (sqlite+aiosqlite:///...)
            **kwargs: Additional engine options (merged with SQLite defaults)

        Returns:
            Configured AsyncEngine for SQLite
        """
        engine_kwargs = self.get_engine_kwargs()
        engine_kwargs.update(kwargs)

        return create_async_engine(
            database_url,
            poolclass=self.get_pool_class(database_url),
            connect_args=self.get_connect_args(),
            **engine_kwargs
        )

    def get_pool_class(self, database_url: str) -> type[Pool]:
        if is_memory_url(database_url):
            return StaticPool
        return NullPool

    def get_connect_args(self) -> dict[str, Any]:
        return {
            "check_same_thread": False
        }

    def get_engine_kwargs(self) -> dict[str, Any]:
        return {
            "echo": False  # Set to True only for SQL debugging in development
        }

    def get_dialect_name(self) -> str:
        return "sqlite"


class DefaultAdapter(DatabaseAdapter):
    """Adapter for server databases (e.g. postgresql+asyncpg) using the driver's pool."""

    def create_engine(self, database_url: str, **kwargs) -> AsyncEngine:
        engine_kwargs = self.get_engine_kwargs()
        engine_kwargs.update(kwargs)
        return create_async_engine(database_url, **engine_kwargs)

    def get_pool_class(self, database_url: str) -> None:
        return None

    def get_connect_args(self) -> dict[str, Any]:
        return {}

    def get_engine_kwargs(self) -> dict[str, Any]:
        return {
            "echo": False,
            "pool_pre_ping": True,
        }

    def get_dialect_name(self) -> str:
        return "default"


def get_database_adapter(database_url: str = "") -> DatabaseAdapter:
    """
    Factory function to get the database adapter for a connection string.

    Returns SQLiteAdapter for sqlite URLs (the default), DefaultAdapter otherwise.
    """
    if not database_url or database_url.startswith("sqlite"):
        return SQLiteAdapter()
    return DefaultAdapter()
