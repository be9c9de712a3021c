"""
Async database engine and session factory.
PostgreSQL (asyncpg) in production, SQLite (aiosqlite) for local runs and tests.
"""

import structlog
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from flyerboard.config import Settings

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    # Fetch server-generated timestamps on flush; async sessions cannot lazy-load them
    __mapper_args__ = {"eager_defaults": True}


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine for DATABASE_URL."""
    url = settings.DATABASE_URL

    if url.startswith("sqlite"):
        kwargs = {"echo": settings.DB_ECHO, "connect_args": {"check_same_thread": False}}
        if ":memory:" in url:
            kwargs["poolclass"] = StaticPool
        engine = create_async_engine(url, **kwargs)
        _enable_sqlite_savepoints(engine)
    else:
        engine = create_async_engine(
            url,
            echo=settings.DB_ECHO,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_pre_ping=True,
        )

    logger.info("db_engine_created", dialect=engine.dialect.name)
    return engine


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """pysqlite defers BEGIN itself, which breaks SAVEPOINT. Emit BEGIN ourselves."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_models(engine: AsyncEngine) -> None:
    """Create tables that don't exist yet. Production schemas are managed by migrations."""
    # Import registers the mapped classes on Base.metadata
    from flyerboard.models import tables  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    await engine.dispose()
    logger.info("db_engine_disposed")
