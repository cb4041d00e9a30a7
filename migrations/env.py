"""
Alembic Environment Configuration

Runs migrations for the links table against DATABASE_URL from settings.
It handles:
- Model imports for autogenerate (SQLModel metadata)
- Async driver URLs: SQLite migrations run on the sync sqlite driver,
  other databases run through the async engine
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel

from urlshortener.core.setting import settings
from urlshortener.db import models  # noqa: F401  (registers tables on SQLModel.metadata)
from urlshortener.db.sqlite_adapter import get_database_adapter

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = SQLModel.metadata

database_url = settings.DATABASE_URL
is_sqlite = get_database_adapter(database_url).get_dialect_name() == "sqlite"


def sync_url(url: str) -> str:
    """sqlite+aiosqlite:///./x.db -> sqlite:///./x.db"""
    return url.replace("sqlite+aiosqlite://", "sqlite://", 1)


def run_migrations_offline() -> None:
    """Emit SQL to the script output instead of executing it."""
    context.configure(
        url=sync_url(database_url),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        render_as_batch=is_sqlite,  # SQLite cannot ALTER most constraints in place
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    connectable = create_async_engine(database_url, poolclass=pool.NullPool)

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_migrations_online() -> None:
    if is_sqlite:
        connectable = create_engine(sync_url(database_url), poolclass=pool.NullPool)
        with connectable.connect() as connection:
            do_run_migrations(connection)
        connectable.dispose()
    else:
        asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
