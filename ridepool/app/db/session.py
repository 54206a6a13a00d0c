"""
Database engine and session factory.

PostgreSQL via asyncpg in production; tests swap in SQLite through the
``get_db`` dependency override.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from ridepool.app.core.config import settings


def _engine_options() -> dict:
    options = {"echo": settings.db_echo, "pool_pre_ping": True}
    # SQLite uses a single-connection pool with no sizing knobs
    if not settings.database_url.startswith("sqlite"):
        options.update(pool_size=settings.db_pool_size, max_overflow=settings.db_max_overflow)
    return options


engine = create_async_engine(settings.database_url, **_engine_options())

# Objects stay readable after commit; seat counts are re-read explicitly where it matters
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


async def get_db():
    """
    FastAPI dependency yielding one session per request.

    Anything left uncommitted when the request fails is rolled back.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
