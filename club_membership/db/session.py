"""Async SQLAlchemy engine and session dependency for the API."""

import logging
from collections.abc import AsyncGenerator
from typing import Annotated, Any

from fastapi import Depends
from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from club_membership.core.config import settings
from club_membership.core.logging import get_logging_context

LOGGER = logging.getLogger(__name__)

SQLITE_BUSY_TIMEOUT_SECONDS = 30


def _enable_sqlite_write_locking(engine: AsyncEngine) -> None:
    """Open every SQLite transaction with ``BEGIN IMMEDIATE``.

    SQLite has no row locks. Taking the database write lock at BEGIN makes
    concurrent units queue behind each other instead of failing on upgrade.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection: Any, _record: Any) -> None:  # noqa: ANN401
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn: Any) -> None:  # noqa: ANN401
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(
    database_url: str,
    *,
    echo: bool = False,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_timeout: float = 30.0,
    pool_recycle: int = 1800,
    pool_pre_ping: bool = True,
) -> AsyncEngine:
    """Build the async engine the membership store runs on.

    Postgres URLs get a bounded connection pool. SQLite URLs (local runs and
    the test suite) ignore the pool options and instead get a busy timeout
    plus immediate write locking, so racing joins and redemptions serialize.
    """
    if make_url(database_url).get_backend_name() == "sqlite":
        sqlite_engine = create_async_engine(
            database_url,
            echo=echo,
            connect_args={"timeout": SQLITE_BUSY_TIMEOUT_SECONDS},
        )
        _enable_sqlite_write_locking(sqlite_engine)
        return sqlite_engine

    pool_options: dict[str, Any] = {
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_timeout": pool_timeout,
        "pool_recycle": pool_recycle,
        "pool_pre_ping": pool_pre_ping,
    }
    return create_async_engine(database_url, echo=echo, **pool_options)


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Services return rows after committing, so attributes must stay loaded.
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


engine = create_db_engine(
    settings.database_url,
    echo=settings.sqlalchemy_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_timeout=settings.db_pool_timeout,
    pool_recycle=settings.db_pool_recycle,
    pool_pre_ping=settings.db_pool_pre_ping,
)
async_session_maker: async_sessionmaker[AsyncSession] = create_session_maker(engine)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield one session per request.

    Each service call commits its own unit of work. If the handler raises,
    whatever is still pending is rolled back before the session closes.
    """
    log_extra = get_logging_context()
    async with async_session_maker() as session:
        LOGGER.debug("session_opened", extra=log_extra)
        try:
            yield session
        except Exception:
            LOGGER.warning("session_rollback", extra=log_extra, exc_info=True)
            await session.rollback()
            raise
        LOGGER.debug("session_closed", extra=log_extra)


SessionDep = Annotated[AsyncSession, Depends(get_session)]


async def init_db(db_engine: AsyncEngine | None = None) -> None:
    """Create every table directly from the models.

    Only the test suite uses this; deployed databases are migrated by Alembic.
    """
    async with (db_engine or engine).begin() as connection:
        await connection.run_sync(SQLModel.metadata.create_all)
