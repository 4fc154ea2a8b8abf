"""Database engine, session factory, and declarative base.

Every request gets one AsyncSession from get_db(). That session is the
unit of work for the whole request: services receive it as an argument,
flush as they go, and the dependency commits once on success or rolls
back on any exception. Nothing is committed mid-request.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=20,
    max_overflow=10,
)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


class Base(DeclarativeBase):
    """Declarative base for every table."""
    pass


async def get_db() -> AsyncSession:
    """Yield a request-scoped session; commit on success, roll back on error."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
