"""Async SQLAlchemy engine for the project database.

Only case-study generation reads from it (project, area, placement and symbol
metadata); generation jobs themselves live in memory. Workflows outlive the
request that started them, so they open sessions from ``async_session``
directly; ``get_db`` is for request-scoped reads like the health check.
"""
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from fossgen.config import settings

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    pool_size=3,
    max_overflow=5,
    pool_pre_ping=True,
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db():
    """FastAPI dependency that yields a read session."""
    async with async_session() as session:
        yield session
