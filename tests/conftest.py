"""
Pytest configuration and fixtures for testing.
"""
import fnmatch
import os
import tempfile
import pytest
import pytest_asyncio
from typing import AsyncGenerator, List
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from inviteflow.main import app
from inviteflow.db.session import Base, get_session
from inviteflow.db.models import Event, Guest, RSVPFieldDefinition, Wish
from inviteflow.cache import redis_client
from inviteflow.core.security import OriginPolicy
from inviteflow.events import publisher
from inviteflow.protocol.registry import ChannelRegistry
from inviteflow.protocol.router import MessageRouter
from inviteflow.services.media_storage import MediaStorage


# Test database URL - use environment variable if available (for Docker)
TEST_DATABASE_URL = os.getenv(
    "TEST_DATABASE_URL",
    f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), f'inviteflow-test-{os.getpid()}.db')}"
)

HOST_ORIGIN = "http://localhost:8000"
TEMPLATE_ORIGIN = "https://invites.example.com"

# Create test engine
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    poolclass=NullPool,  # Disable connection pooling for tests
    echo=False,
)


# Create test session factory
TestSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class FakeCache:
    """In-memory stand-in for the Redis cache with the same async surface."""

    def __init__(self):
        self.store = {}
        self.invalidated: List[str] = []

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, expire=300):
        self.store[key] = value
        return True

    async def delete(self, key):
        self.store.pop(key, None)
        return True

    async def delete_pattern(self, pattern):
        keys = [k for k in self.store if fnmatch.fnmatch(k, pattern)]
        for key in keys:
            del self.store[key]
        return len(keys)

    async def invalidate(self, patterns):
        removed = 0
        for pattern in patterns:
            self.invalidated.append(pattern)
            removed += await self.delete_pattern(pattern)
        return removed

    async def close(self):
        pass


class FakeFrame:
    """Template frame that records every message posted to it."""

    def __init__(self, fail: bool = False):
        self.sent: List[dict] = []
        self.fail = fail

    async def send(self, message: dict):
        if self.fail:
            raise ConnectionError("frame is gone")
        self.sent.append(message)

    def types(self) -> List[str]:
        return [m["type"] for m in self.sent]

    def last(self, kind: str) -> dict:
        return [m for m in self.sent if m["type"] == kind][-1]


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh schema and session for each test.
    """
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()

    # Drop tables after test for complete isolation
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def fake_cache(monkeypatch) -> FakeCache:
    """Replace the Redis cache for every test."""
    fake = FakeCache()
    monkeypatch.setattr(redis_client, "cache", fake)
    return fake


@pytest.fixture(autouse=True)
def published_changes(monkeypatch) -> list:
    """Capture change notices instead of sending them to RabbitMQ."""
    changes = []

    async def mock_publish(change):
        changes.append(change)

    monkeypatch.setattr(publisher, "publish_change", mock_publish)
    return changes


@pytest.fixture
def media(tmp_path) -> MediaStorage:
    return MediaStorage(root=str(tmp_path / "media"), base_url="/media/")


@pytest.fixture
def session_factory(db_session):
    """Session factory bound to the test database, schema included."""
    return TestSessionLocal


@pytest.fixture
def origin_policy() -> OriginPolicy:
    return OriginPolicy([HOST_ORIGIN, TEMPLATE_ORIGIN])


@pytest.fixture
def channel_registry() -> ChannelRegistry:
    return ChannelRegistry()


@pytest.fixture
def make_frame():
    """Factory for recording template frames."""
    return FakeFrame


@pytest.fixture
def message_router(db_session, channel_registry, origin_policy, media) -> MessageRouter:
    """Router wired to the test database; depends on ``db_session`` for the schema."""
    return MessageRouter(
        channel_registry,
        session_factory=TestSessionLocal,
        origin_policy=origin_policy,
        storage=media,
    )


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client for testing API endpoints.
    Overrides the database session dependency.
    """
    async def override_get_session():
        async with TestSessionLocal() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def test_event(db_session: AsyncSession) -> Event:
    """Event with wishes enabled, RSVP editing allowed and a custom id."""
    event = Event(
        custom_event_id="wedding-2025",
        name="Asha & Tom",
        host_id="host-1",
        details={"venue": "Garden Hall"},
        wishes_enabled=True,
        allow_rsvp_edit=True,
    )
    db_session.add(event)
    await db_session.commit()
    await db_session.refresh(event)
    return event


@pytest_asyncio.fixture
async def other_event(db_session: AsyncSession) -> Event:
    event = Event(custom_event_id="birthday-40", name="Forty", host_id="host-2")
    db_session.add(event)
    await db_session.commit()
    await db_session.refresh(event)
    return event


@pytest_asyncio.fixture
async def test_guest(db_session: AsyncSession, test_event: Event) -> Guest:
    """Guest who has not responded yet."""
    guest = Guest(
        custom_guest_id="guest-ada",
        event_id=test_event.id,
        name="Ada",
        mobile_number="+254700000001",
    )
    db_session.add(guest)
    await db_session.commit()
    await db_session.refresh(guest)
    return guest


@pytest_asyncio.fixture
async def rsvp_fields(db_session: AsyncSession, test_event: Event) -> list:
    """Two RSVP form fields, inserted out of display order."""
    fields = [
        RSVPFieldDefinition(
            event_id=test_event.id,
            field_name="meal",
            field_label="Meal preference",
            field_type="select",
            field_options=["veg", "fish"],
            display_order=2,
        ),
        RSVPFieldDefinition(
            event_id=test_event.id,
            field_name="plus_ones",
            field_label="Plus ones",
            field_type="number",
            is_required=True,
            display_order=1,
        ),
    ]
    db_session.add_all(fields)
    await db_session.commit()
    return fields


@pytest_asyncio.fixture
async def test_wishes(db_session: AsyncSession, test_event: Event, test_guest: Guest) -> list:
    """One approved and one pending wish, approved one older."""
    approved = Wish(
        event_id=test_event.id,
        guest_id=test_guest.id,
        guest_name="Ada",
        wish_text="Congratulations!",
        is_approved=True,
    )
    db_session.add(approved)
    await db_session.commit()
    pending = Wish(
        event_id=test_event.id,
        guest_id=test_guest.id,
        guest_name="Ada",
        wish_text="See you there",
        is_approved=False,
    )
    db_session.add(pending)
    await db_session.commit()
    await db_session.refresh(approved)
    await db_session.refresh(pending)
    return [approved, pending]
