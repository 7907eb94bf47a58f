"""
Pytest fixtures for the test database, services, HTTP client and seats.

Tests run against a throwaway SQLite file (aiosqlite) unless
TEST_DATABASE_URL points somewhere else, e.g. a PostgreSQL test database.
Tables are created and dropped around every test for isolation.
"""

import os
import tempfile

_test_db_dir = tempfile.mkdtemp(prefix="seathold-tests-")
os.environ.setdefault(
    "TEST_DATABASE_URL",
    f"sqlite+aiosqlite:///{os.path.join(_test_db_dir, 'seathold_test.db')}",
)
os.environ["DATABASE_URL"] = os.environ["TEST_DATABASE_URL"]
os.environ["ENVIRONMENT"] = "test"
os.environ["REDIS_ENABLED"] = "false"
os.environ["SWEEPER_ENABLED"] = "false"

import fnmatch  # noqa: E402
import json  # noqa: E402
from datetime import timedelta  # noqa: E402
from typing import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import AsyncClient, ASGITransport  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402
from starlette.websockets import WebSocketState  # noqa: E402

from seathold.main import app, wire_services  # noqa: E402
from seathold.db.base import Base  # noqa: E402
from seathold.db.session import get_db, get_engine, get_session_factory  # noqa: E402
from seathold.models.seat import Seat  # noqa: E402
from seathold.services import cache_service  # noqa: E402
from seathold.services.ledger import utcnow  # noqa: E402


class FakeWebSocket:
    """Just enough of starlette's WebSocket for the registry."""

    def __init__(self, fail_on_send: bool = False):
        self.client_state = WebSocketState.CONNECTING
        self.application_state = WebSocketState.CONNECTING
        self.sent: list[str] = []
        self.fail_on_send = fail_on_send
        self.close_code = None

    async def accept(self):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED

    async def send_text(self, data: str):
        if self.fail_on_send:
            raise RuntimeError("connection reset")
        self.sent.append(data)

    async def close(self, code: int = 1000):
        self.close_code = code
        self.application_state = WebSocketState.DISCONNECTED

    def drop(self):
        """Simulate the peer going away."""
        self.client_state = WebSocketState.DISCONNECTED

    def events(self) -> list[dict]:
        return [json.loads(message) for message in self.sent]


class FakeRedis:
    """In-memory stand-in for the few redis.asyncio calls the listing cache makes."""

    def __init__(self):
        self.store: dict[str, str] = {}

    async def get(self, key: str):
        return self.store.get(key)

    async def setex(self, key: str, ttl: int, value: str):
        self.store[key] = value

    async def incr(self, key: str) -> int:
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = str(value)
        return value

    async def delete(self, key: str):
        self.store.pop(key, None)

    async def scan_iter(self, match: str = "*", count: int = 100):
        for key in list(self.store):
            if fnmatch.fnmatch(key, match):
                yield key


def make_seat(seat_id: str, section_id: str = "A", row_id: str = "1", col: int = 1, **kwargs) -> Seat:
    return Seat(id=seat_id, section_id=section_id, row_id=row_id, col=col, price_tier=1, **kwargs)


@pytest.fixture
def fake_redis(monkeypatch):
    """Route the listing cache to an in-memory FakeRedis."""
    client = FakeRedis()

    async def get_fake_redis():
        return client

    monkeypatch.setattr(cache_service, "get_redis", get_fake_redis)
    return client


@pytest.fixture
def fake_websocket_factory():
    return FakeWebSocket


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables, yield session, then drop tables for isolation."""
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with get_session_factory()() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(scope="function")
async def services(db_session: AsyncSession):
    """Registry, sweeper and processor wired exactly as the lifespan does it."""
    wire_services(app, get_session_factory())
    app.state.registry.init()
    yield app.state
    await app.state.registry.shutdown()


@pytest_asyncio.fixture
async def registry(services):
    return services.registry


@pytest_asyncio.fixture
async def processor(services):
    return services.processor


@pytest_asyncio.fixture
async def sweeper(services):
    return services.sweeper


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, services) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that overrides the DB dependency with the test session."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def seats(db_session: AsyncSession) -> list[Seat]:
    """Two sections: A with 12 seats, B with 3."""
    rows = [make_seat(f"A-1-{col}", section_id="A", col=col) for col in range(1, 13)]
    rows += [make_seat(f"B-1-{col}", section_id="B", col=col) for col in range(1, 4)]
    db_session.add_all(rows)
    await db_session.commit()
    return rows


@pytest_asyncio.fixture
async def stale_hold(db_session: AsyncSession, seats) -> Seat:
    """A-1-1 held by 'stale-session' an hour ago."""
    seat = await db_session.get(Seat, "A-1-1")
    seat.status = "held"
    seat.held_by = "stale-session"
    seat.held_at = utcnow() - timedelta(hours=1)
    await db_session.commit()
    return seat


@pytest_asyncio.fixture
async def viewer(registry, fake_websocket_factory):
    """A connected channel that records everything it is sent."""
    websocket = fake_websocket_factory()
    channel = await registry.register(websocket)
    return channel
