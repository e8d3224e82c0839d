"""SQLAlchemy async engine and session setup.

Snapshot and audit writes run inside SAVEPOINTs (``session.begin_nested()``).
The stdlib sqlite3 driver manages transactions on its own and breaks nested
transactions unless SQLAlchemy is allowed to emit BEGIN itself, so SQLite
engines get the documented driver workaround applied.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from workflowguard.config import settings


def enable_sqlite_savepoints(async_engine: AsyncEngine) -> None:
    """Let SQLAlchemy own BEGIN on a SQLite engine so SAVEPOINT works."""

    @event.listens_for(async_engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str, **kwargs) -> AsyncEngine:
    """Create an async engine, applying SQLite fixes where needed."""
    if url.startswith("sqlite"):
        async_engine = create_async_engine(url, **kwargs)
        enable_sqlite_savepoints(async_engine)
        return async_engine
    return create_async_engine(url, pool_pre_ping=True, **kwargs)


def build_session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


engine = build_engine(settings.database_url, echo=False)
async_session_factory = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async DB session.

    Commits when the request handler returns, rolls back if it raises.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(async_engine: AsyncEngine | None = None) -> None:
    """Create all tables. Intended for dev/test only — use Alembic in production."""
    from workflowguard.models.base import Base

    # Import all models so they register with Base.metadata
    import workflowguard.models  # noqa: F401

    async with (async_engine or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    """Dispose of the connection pool."""
    await engine.dispose()
