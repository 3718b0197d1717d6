"""Test fixtures — a fresh SQLite database per test.

Each test gets its own database file built from the ORM metadata, so
tests are isolated without savepoint tricks and several sessions can run
concurrently against the same data (needed for the race tests).

Settings are pinned through MURMUR_* env vars before murmur is imported:
cheap bcrypt rounds, a test environment, and a Redis URL nothing listens
on (rate limiting is skipped without Redis).
"""

import os

os.environ.setdefault("MURMUR_ENVIRONMENT", "test")
os.environ.setdefault("MURMUR_BCRYPT_ROUNDS", "4")
os.environ.setdefault("MURMUR_REDIS_URL", "redis://127.0.0.1:1/0")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402

from murmur.db.engine import get_db  # noqa: E402
from murmur.db.models import Base  # noqa: E402
from murmur.main import app  # noqa: E402
from murmur.realtime import Broadcaster, KeyedLock  # noqa: E402
from murmur.services.user_service import UserService  # noqa: E402


def sqlite_url(path) -> str:
    return f"sqlite+aiosqlite:///{path}"


@pytest.fixture()
def db_path(tmp_path):
    return tmp_path / "murmur.db"


@pytest_asyncio.fixture()
async def engine(db_path):
    engine = create_async_engine(
        sqlite_url(db_path), connect_args={"timeout": 30}
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def broadcaster():
    return Broadcaster(queue_size=16)


@pytest.fixture()
def locks():
    return KeyedLock()


@pytest.fixture()
def make_user(db_session):
    """Factory: create a user directly through the service layer."""
    counter = {"n": 0}

    async def _make(name: str | None = None, password: str = "password123"):
        counter["n"] += 1
        name = name or f"user{counter['n']}"
        user, _tokens = await UserService(db_session).signup(
            name=name,
            email=f"{name.lower()}@example.com",
            password=password,
        )
        return user

    return _make


@pytest_asyncio.fixture()
async def client(session_factory):
    """HTTP client against the real app, with get_db pointed at the test DB.

    Auth is NOT overridden: tests sign up and send real bearer tokens.
    Each test gets a fresh broadcaster and lock map on app.state.
    """
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.broadcaster = Broadcaster(queue_size=16)
    app.state.locks = KeyedLock()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture()
def signup(client):
    """Factory: sign up through the API; returns {"user", "token", "headers"}."""

    async def _signup(name: str, password: str = "password123") -> dict:
        r = await client.post(
            "/api/v1/auth/signup",
            json={
                "name": name,
                "email": f"{name.lower()}@example.com",
                "password": password,
            },
        )
        assert r.status_code == 201, r.text
        data = r.json()
        return {
            "user": data["user"],
            "token": data["access_token"],
            "headers": {"Authorization": f"Bearer {data['access_token']}"},
        }

    return _signup
