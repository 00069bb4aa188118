"""
Database engine and session management.

One ``AsyncSession`` per request. The session is the transaction boundary:
it commits when the request handler returns and rolls back when it raises,
so a refused or failed operation never leaves half its writes behind.
"""

import logging
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from stickerswap.config import settings
from stickerswap.models.db import Base

logger = logging.getLogger(__name__)

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a database session.

    Usage in FastAPI:
        @router.post("/trades")
        async def create(session: Annotated[AsyncSession, Depends(get_session)]):
            ...

    Domain errors (``KnownError``, ``RefusalError``) roll back exactly like
    database errors.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """
    Create tables for all ORM models.

    Called once at application startup.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready")
