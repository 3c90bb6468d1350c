"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from saferoute.app.main import app
from saferoute.app.db.session import get_db, Base
import saferoute.app.core.redis_client as redis_client_module
from saferoute.app.services.dispatcher import AlertDispatcher
from saferoute.app.services.realtime import RealtimeBroadcaster
from saferoute.app.services.sample_processor import ProcessorConfig
from saferoute.app.services.tracking_service import TrackingService
from saferoute.tests.factories import FakeProvider, MockRedis, make_user, make_circle

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

# Redis Fixture (Session Scope)
@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()

@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session.
    Global override is safer here than per-test override to avoid app state flux.
    """

    # Patch the global redis client used by the realtime broadcaster
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client

@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

@pytest.fixture
def provider():
    return FakeProvider()

@pytest.fixture
def dispatcher(provider, redis_client_session):
    return AlertDispatcher(
        provider,
        broadcaster=RealtimeBroadcaster(redis=redis_client_session, timeout=1.0),
        concurrency=4,
        message_timeout=1.0,
        emergency_timeout=2.0,
        failure_threshold=2,
        reset_timeout=60,
    )

@pytest.fixture
async def tracking(dispatcher):
    """Tracking service wired into the app; timers effectively disabled."""
    service = TrackingService(
        dispatcher,
        session_factory=TestingSessionLocal,
        config=ProcessorConfig(),
        persist_interval=3600,
        notify_interval=3600,
    )
    app.state.tracking = service
    yield service
    await service.shutdown()

@pytest.fixture
async def client(tracking):
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session

@pytest.fixture
async def circle(db_session):
    """Traveller alice with guardians bob and carol in circle FAM001."""
    alice = await make_user(db_session, "alice", phone="+15550000001")
    bob = await make_user(db_session, "bob", phone="+15550000002")
    carol = await make_user(db_session, "carol", phone="+15550000003")
    await make_circle(db_session, "FAM001", alice, [bob, carol])
    return alice, bob, carol
