"""Async SQLAlchemy engine and session management."""

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from hr_leave.config import settings

# Async engine shared by the leave store and the notifier
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.ENVIRONMENT == "development",
    pool_size=10,
    max_overflow=20,
    pool_pre_ping=True,
)

# Async session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


async def create_tables(bind: AsyncEngine = engine) -> None:
    """Create missing tables. Used outside production where alembic is not run."""
    # Model modules must be imported so their tables are registered on Base
    import hr_leave.leave.models  # noqa: F401
    import hr_leave.notifications.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
