"""
Async SQLAlchemy session factory.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from volumetria.core.config import settings


def _engine_kwargs(url: str) -> dict:
    """Pool settings only apply to server databases."""
    if url.startswith("sqlite"):
        return {}
    return {"pool_size": 20, "max_overflow": 10, "pool_pre_ping": True}


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=(settings.APP_ENV == "development" and settings.LOG_LEVEL == "DEBUG"),
    **_engine_kwargs(settings.DATABASE_URL),
)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def make_session_factory(url: str | None = None) -> tuple[async_sessionmaker[AsyncSession], AsyncEngine]:
    """
    Create a FRESH engine + session factory.

    Celery workers run each task under asyncio.run(), so they cannot share
    the module-level engine (its pool is bound to another event loop).
    Callers must dispose the returned engine.
    """
    fresh_engine = create_async_engine(url or settings.DATABASE_URL, echo=False)
    factory = async_sessionmaker(fresh_engine, class_=AsyncSession, expire_on_commit=False)
    return factory, fresh_engine


async def get_db() -> AsyncSession:
    """Dependency that yields an async DB session."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
