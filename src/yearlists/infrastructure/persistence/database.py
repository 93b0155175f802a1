"""Database engine and session management.

Hey future me - the list operations read state (year locks, the current main list, the
next sort order) and then write based on it, all inside one session. That is only sound
if the read already happens inside the write transaction:

* PostgreSQL runs at READ COMMITTED. The "clear every main of the year, then set one"
  UPDATEs take row locks, so the last committed writer wins and one main remains.
* SQLite's Python driver normally delays BEGIN until the first INSERT/UPDATE, which
  would run the year-lock SELECT in autocommit. We switch the driver's own transaction
  handling off and emit BEGIN IMMEDIATE ourselves, so every unit of work holds the write
  lock from its first statement and concurrent writers queue on the busy timeout.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from yearlists.config import Settings
from yearlists.config.settings import DatabaseSettings

logger = logging.getLogger(__name__)

SERVER_ISOLATION_LEVEL = "READ COMMITTED"
SQLITE_BEGIN_STATEMENT = "BEGIN IMMEDIATE"
# Seconds a SQLite writer waits for the lock before "database is locked"
SQLITE_BUSY_TIMEOUT = 30


def is_sqlite_url(url: str) -> bool:
    return url.startswith("sqlite")


def engine_options(database: DatabaseSettings) -> dict[str, Any]:
    """Keyword arguments for create_async_engine, per backend.

    Pool sizing and the isolation level only apply to server databases. SQLite gets
    a busy timeout instead; its transaction mode is set by the connection hooks.
    """
    options: dict[str, Any] = {
        "echo": database.echo,
        "pool_pre_ping": database.pool_pre_ping,
    }
    if is_sqlite_url(database.url):
        options["connect_args"] = {
            "check_same_thread": False,
            "timeout": SQLITE_BUSY_TIMEOUT,
        }
    else:
        options.update(
            isolation_level=SERVER_ISOLATION_LEVEL,
            pool_size=database.pool_size,
            max_overflow=database.max_overflow,
            pool_timeout=database.pool_timeout,
            pool_recycle=database.pool_recycle,
        )
    return options


def install_sqlite_transaction_hooks(engine: AsyncEngine) -> None:
    """Enforce foreign keys and take the write lock when a transaction begins.

    list_items -> lists (CASCADE) and lists -> list_groups (SET NULL) rely on the
    foreign_keys pragma, which SQLite leaves off per connection.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_conn: Any, _connection_record: Any) -> None:
        # Autocommit at driver level; BEGIN is emitted by _on_begin below
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql(SQLITE_BEGIN_STATEMENT)


class Database:
    """Owns the async engine and hands out sessions for units of work."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        url = settings.database.url

        self._engine = create_async_engine(url, **engine_options(settings.database))
        if is_sqlite_url(url):
            install_sqlite_transaction_hooks(self._engine)

        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.debug(
            "Database engine created",
            extra={"dialect": self._engine.dialect.name},
        )

    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """One unit of work: commit on normal exit, roll back and re-raise otherwise."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except BaseException:
                # Cancelled units of work roll back as well
                await session.rollback()
                raise

    async def close(self) -> None:
        await self._engine.dispose()

    async def create_tables(self) -> None:
        """Create the schema from the ORM metadata (tests and local setups).

        Deployed databases are migrated with Alembic instead.
        """
        from yearlists.infrastructure.persistence.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_tables(self) -> None:
        from yearlists.infrastructure.persistence.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
