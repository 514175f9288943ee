"""
Async SQLAlchemy session factory.

Celery tasks call `make_session_factory()` per invocation (a fresh
engine per `asyncio.run`) so pooled connections never cross event loops.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from silver.core.config import settings
from silver.db.models import Base


def make_session_factory(
    url: str | None = None,
) -> tuple[async_sessionmaker[AsyncSession], AsyncEngine]:
    """Build an engine and its session factory.  Caller disposes the engine."""
    engine = create_async_engine(
        url or settings.DATABASE_URL,
        echo=False,
        pool_pre_ping=True,
    )
    factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return factory, engine


async def init_models(engine: AsyncEngine) -> None:
    """Create missing tables (no migrations in this service)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
