"""Async engine and request-scoped sessions.

Sessions opened by ``get_db`` are committed when the request handler returns
and rolled back when it raises; SQLAlchemy failures surface as
``database_error``.
"""

import logging
from collections.abc import AsyncGenerator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from gristips.config import get_settings
from gristips.constants import (
    DB_MAX_OVERFLOW,
    DB_POOL_RECYCLE,
    DB_POOL_SIZE,
    DB_POOL_TIMEOUT,
)
from gristips.exceptions import AppError, ErrorType

logger = logging.getLogger(__name__)

engine = create_async_engine(
    get_settings().database_url_async,
    pool_pre_ping=True,
    pool_size=DB_POOL_SIZE,
    max_overflow=DB_MAX_OVERFLOW,
    pool_timeout=DB_POOL_TIMEOUT,
    pool_recycle=DB_POOL_RECYCLE,
)

async_session_maker = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


async def init_db() -> None:
    """Create missing tables. Migrations are handled by Alembic; this covers fresh databases."""
    from gristips.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of the connection pool at shutdown."""
    await engine.dispose()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session dependency."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Database error, transaction rolled back: {e}")
            raise AppError(ErrorType.DATABASE_ERROR, details=str(e)) from e
        except Exception:
            await session.rollback()
            raise
