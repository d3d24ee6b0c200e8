import asyncio
from collections.abc import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from giftlists.core.config import settings


def _is_postgres(dsn: str) -> bool:
    return "postgresql" in dsn.lower()


def _enable_sqlite_write_locking(engine: AsyncEngine) -> None:
    """Make every SQLite transaction start with BEGIN IMMEDIATE.

    pysqlite defers BEGIN until the first write, so a read-then-write
    transaction can act on stale state. Taking the write lock up front
    serializes writers the way a row lock does on PostgreSQL.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(dsn: str) -> AsyncEngine:
    if _is_postgres(dsn):
        return create_async_engine(
            dsn,
            echo=False,
            pool_pre_ping=True,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_recycle=settings.db_pool_recycle,
            pool_timeout=settings.db_pool_timeout,
        )
    new_engine = create_async_engine(
        dsn,
        echo=False,
        pool_pre_ping=True,
        connect_args={"timeout": 15},
    )
    if "sqlite" in dsn.lower():
        _enable_sqlite_write_locking(new_engine)
    return new_engine


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=bind, expire_on_commit=False, autoflush=False)


engine = build_engine(settings.database_dsn)


class Base(DeclarativeBase):
    pass


async_session_factory = build_session_factory(engine)

_schema_ready = False
_schema_lock = asyncio.Lock()


async def ensure_schema_ready() -> None:
    """Create DB tables once for environments where startup hooks are skipped."""
    global _schema_ready
    if _schema_ready:
        return

    async with _schema_lock:
        if _schema_ready:
            return

        from giftlists.models import models as _models  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        _schema_ready = True


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    await ensure_schema_ready()
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
