"""
Async SQLAlchemy engine, sessions and the unit-of-work helper.

The relational store keeps accounts, linked wallets, drafts, listings and
purchase records. SQLite (aiosqlite) is the default; any async driver URL
works. Tables are created on startup via init_db().
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


def to_async_url(url: str) -> str:
    """sqlite:///... → sqlite+aiosqlite:///...; other URLs pass through."""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url


# ── Engine ──────────────────────────────────────────────────────────

engine = create_async_engine(
    to_async_url(settings.database_url),
    echo=(settings.environment == "development"),
)

# Services return ORM rows after commit, so they must stay loaded
async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


# ── Helpers ─────────────────────────────────────────────────────────

async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create all tables. Called once on server startup."""
    import db_models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables created (or already exist)")


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency: one session per request."""
    async with async_session() as session:
        yield session


@asynccontextmanager
async def transaction(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Unit-of-work boundary for multi-step state changes.

    The session autobegins on first use; leaving the block commits, any
    exception rolls back and is re-raised so no partial write is visible.
    """
    try:
        yield db
        await db.commit()
    except BaseException:
        await db.rollback()
        raise
