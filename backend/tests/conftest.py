"""
Pytest configuration and shared fixtures for the marketplace tests.

Provides an in-memory SQLite session per test, a faked chain reader with
an instant verifier, sample users with linked wallets, and an ASGI client
whose app.state services are the fakes.
"""
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from config import settings
from database import Base, get_db
from tests.fakes import WALLET_1, WALLET_2, FakeBlobStore, FakeChainReader, no_sleep

# ── Test Configuration ───────────────────────────────────────────────
# Set test-only values for settings that would normally come from .env
if not settings.jwt_secret:
    settings.jwt_secret = "test-jwt-secret-for-pytest-only-0123456789"


# ── Database Fixtures ────────────────────────────────────────────────


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create an in-memory SQLite database session for each test.

    Uses StaticPool to allow in-memory SQLite with async SQLAlchemy.
    """
    import db_models  # noqa: F401

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session

    await engine.dispose()


# ── Chain / Blob Fakes ───────────────────────────────────────────────


@pytest.fixture
def chain():
    return FakeChainReader()


@pytest.fixture
def verifier(chain):
    """Ownership verifier over the fake chain with no real waiting."""
    from services.ownership_service import OwnershipVerifier
    return OwnershipVerifier(chain, max_attempts=3, retry_delay=1.0, sleep=no_sleep)


@pytest.fixture
def blob_store():
    return FakeBlobStore()


# ── Test Data Fixtures ────────────────────────────────────────────────


@pytest_asyncio.fixture
async def seller_id(db_session: AsyncSession) -> int:
    """Id of a user whose primary wallet is WALLET_1."""
    from services import user_service
    user = await user_service.register_user(
        db_session,
        email="seller@example.com",
        hashed_password="hashed-secret",
        username="seller",
        contact_wallet_address=WALLET_1,
    )
    return user.id


@pytest_asyncio.fixture
async def buyer_id(db_session: AsyncSession) -> int:
    """Id of a user whose primary wallet is WALLET_2."""
    from services import user_service
    user = await user_service.register_user(
        db_session,
        email="buyer@example.com",
        hashed_password="hashed-secret",
        username="buyer",
        contact_wallet_address=WALLET_2,
    )
    return user.id


# ── API Client ────────────────────────────────────────────────────────


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, chain: FakeChainReader, verifier, blob_store):
    """
    ASGI client with the test DB and fake services on app.state.

    The lifespan does not run under ASGITransport, so nothing touches a
    real RPC node or Pinata.
    """
    from main import app
    from services.metadata_service import MetadataResolver

    async def override_get_db():
        yield db_session

    offchain = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(404)),
    )
    app.dependency_overrides[get_db] = override_get_db
    app.state.settings = settings
    app.state.chain_reader = chain
    app.state.ownership_verifier = verifier
    app.state.metadata_resolver = MetadataResolver(chain, offchain)
    app.state.blob_store = blob_store

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
    for name in ("chain_reader", "ownership_verifier", "metadata_resolver", "blob_store", "solana_client"):
        if hasattr(app.state, name):
            delattr(app.state, name)
    await offchain.aclose()
