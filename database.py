import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

logger = logging.getLogger(__name__)

# Create declarative base for models
Base = declarative_base()


def normalize_database_url(database_url: str) -> str:
    """
    Map plain driver URLs onto their async drivers.
    sqlite:// -> sqlite+aiosqlite://, postgresql:// -> postgresql+asyncpg://
    """
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


def create_engine(database_url: str) -> AsyncEngine:
    return create_async_engine(
        normalize_database_url(database_url),
        echo=False,
        future=True,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Create async session factory
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """
    Create all tables and verify the connection answers a trivial query.
    Raises whatever the driver raises when the database is unreachable.
    """
    async with engine.begin() as conn:
        # Import models here to ensure they're registered with Base
        from database_models import ProjectRecord  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)
        await conn.execute(text("SELECT 1"))
    logger.info("Database schema ready")
