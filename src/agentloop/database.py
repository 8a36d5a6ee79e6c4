from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from agentloop.models import Base


async def init_db(database_url: str) -> AsyncEngine:
    """Create and return an async SQLAlchemy engine.

    SQLite (self-hosted and test installs) uses the dialect's default pool;
    pool sizing only applies to server databases.
    """
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=False)
    engine = create_async_engine(
        database_url,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        echo=False,
    )
    return engine


def get_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create and return an async session factory bound to the given engine."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_all(engine: AsyncEngine) -> None:
    """Create every mapped table. Used by SQLite installs and tests instead of Alembic."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    """Dispose of the async engine and release all connections."""
    await engine.dispose()
