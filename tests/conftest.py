"""
Pytest Configuration and Fixtures

Provides fixtures for:
- Database sessions (async, in-memory SQLite)
- The FastAPI test client
- A small massif directory with square boundaries
- Mock WhatsApp provider and admin notifier
"""
# Required credentials must exist before conditions.core.config is imported
import os

os.environ.setdefault("METEOFRANCE_API_KEY", "test-meteofrance-key")
os.environ.setdefault("STORAGE_BUCKET", "test-bucket")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "123456:test-token")
os.environ.setdefault("WHATSAPP_CLOUD_API_TOKEN", "test-whatsapp-token")
os.environ.setdefault("WHATSAPP_CLOUD_API_PHONE_ID", "1234567890")
os.environ.setdefault("WHATSAPP_CLOUD_API_APP_SECRET", "test-app-secret")
os.environ.setdefault("WHATSAPP_CLOUD_API_VERIFY_TOKEN", "test-verify-token")
os.environ.setdefault("GOOGLE_MAPS_API_KEY", "test-google-key")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")

from contextlib import asynccontextmanager
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from conditions.core.circuit_breaker import CircuitBreaker
from conditions.db import models  # noqa: F401  (registers the tables)
from conditions.db.database import Base, get_db, get_session_factory
from conditions.domain.massif_directory import MassifDirectory
from conditions.domain.services.whatsapp.base_provider import BaseWhatsAppProvider
from conditions.domain.services.whatsapp.provider_factory import reset_providers
from conditions.main import app
from conditions.state_machine.session_store import ConversationSessionStore
from tests.factories import SAMPLE_MASSIFS

# Test database URL (SQLite in memory for fast tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests"""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def directory() -> MassifDirectory:
    return MassifDirectory(SAMPLE_MASSIFS)


@pytest.fixture(scope="function")
async def test_client(db_session: AsyncSession, directory: MassifDirectory):
    """Create test client with database override and a loaded directory"""
    from httpx import ASGITransport, AsyncClient

    async def override_get_db():
        yield db_session

    @asynccontextmanager
    async def shared_session():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: shared_session
    app.state.directory = directory
    app.state.sessions = ConversationSessionStore()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    """Every test starts with closed breakers and no cached provider"""
    CircuitBreaker.reset_all()
    reset_providers()
    yield
    CircuitBreaker.reset_all()
    reset_providers()


# ============================================================================
# Mock External Services
# ============================================================================

@pytest.fixture
def mock_provider() -> AsyncMock:
    """WhatsApp provider whose every call succeeds"""
    provider = AsyncMock(spec=BaseWhatsAppProvider)
    provider.provider_name = "mock"
    provider.upload_media.return_value = "media-id-1"
    return provider


@pytest.fixture
def mock_notifier() -> AsyncMock:
    notifier = AsyncMock()
    notifier.notify = AsyncMock(return_value=None)
    notifier.notify_error = AsyncMock(return_value=None)
    return notifier


