"""
Engine and sessions for the comparison history store.

Comparison records and their per-source outcomes live in
`comparison_records` / `recognition_outcomes`. Local runs default to a
`plate_history.db` SQLite file through aiosqlite; deployments point
DATABASE_URL at MySQL through aiomysql.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from app.core.config import get_settings

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def get_engine() -> AsyncEngine:
    """
    Process-wide engine for DATABASE_URL, created on first use.

    A MySQL server drops idle connections, so pooled ones are pinged
    before use and replaced after an hour. The SQLite file needs neither.
    """
    global _engine
    if _engine is None:
        settings = get_settings()
        if _is_sqlite(settings.database_url):
            _engine = create_async_engine(settings.database_url, echo=settings.debug)
        else:
            _engine = create_async_engine(
                settings.database_url,
                echo=settings.debug,
                pool_pre_ping=True,
                pool_recycle=3600,
            )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory(get_engine())
    return _session_factory


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Sessions bound to `engine`.

    Records stay readable after commit so a saved comparison can be
    serialized straight into the response.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding one session per request.

    A comparison and its outcomes are committed together when the route
    returns, and rolled back together if it raises.
    """
    session_factory = get_session_factory()
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create the history tables if they do not exist yet."""
    from app.infrastructure.db.models import Base

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose the engine on shutdown; the next use builds a new one."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def create_test_engine(database_url: str = "sqlite+aiosqlite:///:memory:") -> AsyncEngine:
    """
    Engine for the test suite.

    Each in-memory SQLite connection is its own empty database, so the
    StaticPool hands every session the one connection that `init_db`
    created the tables on.
    """
    if _is_sqlite(database_url):
        return create_async_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_async_engine(database_url)
