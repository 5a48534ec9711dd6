"""Shared test fixtures and configuration."""
import asyncio
import pytest
import os
from pathlib import Path
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

# Set test environment variables before importing app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ADMIN_PASSWORD", "testpass123")
os.environ.setdefault("VENUE_NAME", "Test Pub")

from orderflow.main import app
from orderflow.core import dependencies
from orderflow.core.config import Settings
from orderflow.core.dependencies import get_menu_repository
from orderflow.db.database import get_db, get_session_factory
from orderflow.db.models import Base
from orderflow.services.menu.repository import MenuRepository
from orderflow.services.menu.in_memory_menu import InMemoryMenuProvider
from orderflow.services.ordering.commands import OrderCommandHandler
from orderflow.services.ordering.models import OrderLine
from orderflow.services.persistence.orders import OrderStore
from orderflow.services.realtime.broadcaster import Broadcaster
from orderflow.services.realtime.registry import SessionRegistry


class RecordingSender:
    """Stand-in for an observer WebSocket."""

    def __init__(self, fail: bool = False, delay: float = 0.0):
        self.fail = fail
        self.delay = delay
        self.frames = []
        self.close_code = None

    async def send_json(self, frame):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("socket closed")
        self.frames.append(frame)

    async def close(self, code=1000, reason=None):
        self.close_code = code

    def of_type(self, frame_type):
        return [frame for frame in self.frames if frame["type"] == frame_type]


@pytest.fixture
def test_settings(tmp_path):
    """Override settings for testing."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}",
        venue_name="Test Pub",
        admin_password="testpass123",
        broadcast_send_timeout=0.5,
    )


@pytest.fixture
def test_menu_path():
    """Return path to test menu YAML file."""
    return Path(__file__).parent / "fixtures" / "test_menu.yaml"


@pytest.fixture
def test_menu_repository(test_menu_path):
    """Create menu repository with test data."""
    provider = InMemoryMenuProvider(menu_file=str(test_menu_path))
    return MenuRepository(provider)


@pytest.fixture
async def test_db_engine(test_settings, test_menu_repository):
    """
    Create a file-backed test database with the test menu loaded.

    NullPool opens a fresh connection per session, so the engine can be
    shared between the test's event loop and the TestClient's loop, and
    concurrent sessions really are separate connections.
    """
    engine = create_async_engine(test_settings.database_url, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_sessionmaker(engine, expire_on_commit=False)() as session:
        await test_menu_repository.sync_to_database(session)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def test_session_factory(test_db_engine):
    """Session factory bound to the test database."""
    return async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    """Create test database session."""
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def store(test_db):
    """Order store on the test session."""
    return OrderStore(test_db)


@pytest.fixture
def registry():
    """Fresh session registry."""
    return SessionRegistry()


@pytest.fixture
def broadcaster(registry):
    """Broadcaster with a short send timeout."""
    return Broadcaster(registry, send_timeout=0.5)


@pytest.fixture
async def handler(store, broadcaster):
    """Command handler wired to the test store and broadcaster."""
    yield OrderCommandHandler(store, broadcaster)
    # Scheduled fan-out must not outlive the test's event loop
    await broadcaster.drain()


@pytest.fixture
def make_sender():
    """Build fake observer senders that record every frame."""
    return RecordingSender


@pytest.fixture
def place_order(store):
    """Create an order directly through the store."""
    async def _place_order(booth_id="A1", lines=((1, 3),), note=None):
        return await store.create_order(
            booth_id,
            [OrderLine(menu_id=menu_id, quantity=quantity) for menu_id, quantity in lines],
            note=note,
        )
    return _place_order


@pytest.fixture
def clean_auth_sessions():
    """Clean up authentication sessions before and after tests."""
    from orderflow.api import auth
    auth._sessions.clear()
    yield
    auth._sessions.clear()


@pytest.fixture
def clean_realtime():
    """Empty the process-wide registry before and after tests."""
    dependencies.registry.clear()
    yield
    dependencies.registry.clear()


@pytest.fixture
def test_client(test_session_factory, test_menu_repository, test_settings, monkeypatch, clean_realtime):
    """Create FastAPI test client with overrides."""
    async def _override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_session_factory] = lambda: test_session_factory
    app.dependency_overrides[get_menu_repository] = lambda: test_menu_repository

    monkeypatch.setattr("orderflow.api.auth.settings", test_settings)

    # Startup runs against the test database, which is already created and seeded
    async def _noop_init_db():
        return None

    monkeypatch.setattr("orderflow.main.init_db", _noop_init_db)
    monkeypatch.setattr("orderflow.main.AsyncSessionLocal", test_session_factory)

    # Entering the client keeps one event loop for HTTP and WebSocket sessions
    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def authenticated_client(test_client, test_settings, clean_auth_sessions):
    """Create test client with valid admin session cookie."""
    response = test_client.post(
        "/api/admin/auth",
        json={"password": test_settings.admin_password}
    )
    assert response.status_code == 200

    return test_client
