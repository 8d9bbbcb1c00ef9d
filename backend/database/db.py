"""
Async database engine and session handling for the family accounts store.

PostgreSQL (asyncpg) in deployment; any SQLAlchemy async URL works, which
lets local runs point DATABASE_URL at sqlite+aiosqlite.
"""

import os
from typing import AsyncGenerator, Dict
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from dotenv import load_dotenv

load_dotenv()


def _default_database_url() -> str:
    user = os.getenv("POSTGRES_USER", "family")
    password = os.getenv("POSTGRES_PASSWORD", "family")
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    name = os.getenv("POSTGRES_DB", "family_accounts")
    return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{name}"


DATABASE_URL = os.getenv("DATABASE_URL") or _default_database_url()
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"


def _engine_options(url: str) -> Dict:
    """Pool settings per backend; SQLite has no server connection to ping."""
    if url.startswith("sqlite"):
        return {"echo": SQL_ECHO}
    return {"echo": SQL_ECHO, "pool_pre_ping": True}


engine: AsyncEngine = create_async_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

# Services read attributes after commit, so objects must not expire
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    """Declarative base shared by every ORM model."""


# Registers the models on Base.metadata; must follow the Base definition
from backend.database import models  # noqa: F401, E402


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding one session per request.

    Whatever the handler left pending is committed when it returns and
    rolled back if it raised.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_database():
    """Create any missing tables. Alembic owns schema changes after that."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, checkfirst=True)
