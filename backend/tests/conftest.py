"""Pytest fixtures for the blog backend."""

from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from pathlib import Path
from typing import Any
from uuid import uuid4

from alembic import command
from alembic.config import Config
import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel

from app import create_app
from core import Settings
from core.config import settings
from db import build_engine, build_session_maker
from services import MediaStore, RateLimiter

TEST_JWT_SECRET = "test-signing-secret-0123456789abcdef"
TEST_PASSWORD = "secret1"
TEST_MEDIA_BASE_URL = "http://media.test/blog-media"


def _run_alembic_migrations(database_url: str) -> None:
    """Apply Alembic migrations to the given database URL."""
    backend_dir = Path(__file__).resolve().parents[1]
    alembic_cfg = Config(str(backend_dir / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(backend_dir / "alembic"))

    original_database_url = settings.database_url
    try:
        settings.database_url = database_url
        command.upgrade(alembic_cfg, "head")
    finally:
        settings.database_url = original_database_url


@pytest.fixture(scope="session")
def test_database_url(tmp_path_factory) -> str:
    """Create and migrate a file-backed SQLite database for tests."""
    db_dir = tmp_path_factory.mktemp("sqlite")
    db_path = db_dir / "backend-test.db"
    database_url = f"sqlite+aiosqlite:///{db_path}"
    _run_alembic_migrations(database_url)
    return database_url


@pytest.fixture(scope="session")
def test_settings(test_database_url: str) -> Settings:
    return Settings(
        database_url=test_database_url,
        jwt_secret=TEST_JWT_SECRET,
        client_url="http://client.test",
        media_public_base_url=TEST_MEDIA_BASE_URL,
        google_client_id="test-client-id",
        google_client_secret="test-client-secret",
    )


@pytest_asyncio.fixture(scope="session")
async def test_engine(test_database_url: str) -> AsyncIterator[AsyncEngine]:
    """Create an async engine bound to the migrated SQLite test database."""
    engine = build_engine(
        test_database_url,
        connect_args={"check_same_thread": False},
    )
    yield engine
    await engine.dispose()


@pytest.fixture(scope="session")
def session_maker(test_engine) -> async_sessionmaker[AsyncSession]:
    """Return a session factory bound to the test engine."""
    return build_session_maker(test_engine)


@pytest.fixture(scope="session")
def app(session_maker, test_settings: Settings) -> Iterator[FastAPI]:
    """Create the FastAPI app bound to the migrated test database."""
    application = create_app(test_settings)
    application.state.session_maker = session_maker
    yield application


@pytest_asyncio.fixture()
async def async_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Return an HTTPX async client bound to the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest_asyncio.fixture(autouse=True)
async def clean_database(session_maker) -> AsyncIterator[None]:
    """Clear tables before each test to guarantee isolation."""
    async with session_maker() as session:
        for table in reversed(SQLModel.metadata.sorted_tables):
            await session.execute(table.delete())
        await session.commit()
    yield


@pytest_asyncio.fixture()
async def db_session(session_maker) -> AsyncIterator[AsyncSession]:
    """Provide a raw database session to tests."""
    async with session_maker() as session:
        yield session


class _InMemoryRedis:
    def __init__(self) -> None:
        self.data: dict[str, int] = {}

    async def incr(self, key: str) -> int:
        value = self.data.get(key, 0) + 1
        self.data[key] = value
        return value

    async def expire(self, key: str, ttl: int) -> None:  # pragma: no cover - noop
        return None


@pytest.fixture(autouse=True)
def _rate_limiter_stub(app: FastAPI) -> Iterator[None]:
    original = app.state.rate_limiter
    app.state.rate_limiter = RateLimiter(_InMemoryRedis(), limit=1_000, window_seconds=60)
    yield
    app.state.rate_limiter = original


class DummyMinio:
    def __init__(self) -> None:
        self.stored: dict[str, bytes] = {}
        self.removed: list[str] = []

    def bucket_exists(self, bucket_name: str) -> bool:
        return True

    def make_bucket(self, bucket_name: str) -> None:  # pragma: no cover - not used
        return None

    def put_object(self, bucket_name, object_name, data, length, content_type=None):
        self.stored[object_name] = data.read()

    def remove_object(self, bucket_name, object_name):
        self.removed.append(object_name)


@pytest.fixture()
def dummy_minio(app: FastAPI) -> Iterator[DummyMinio]:
    """Route avatar storage to an in-memory MinIO stand-in."""
    client = DummyMinio()
    original = app.state.media_store
    app.state.media_store = MediaStore(client, "test-bucket", TEST_MEDIA_BASE_URL)
    yield client
    app.state.media_store = original


def build_credentials(prefix: str = "alice") -> dict[str, str]:
    return {
        "email": f"{prefix}_{uuid4().hex[:8]}@example.com",
        "password": TEST_PASSWORD,
    }


RegisterUser = Callable[..., Awaitable[dict[str, Any]]]


@pytest.fixture()
def register_user(async_client: AsyncClient) -> RegisterUser:
    """Register and log in a user; returns ids, token and auth headers."""

    async def _register(
        prefix: str = "alice",
        *,
        name: str | None = None,
        email: str | None = None,
    ) -> dict[str, Any]:
        credentials = build_credentials(prefix)
        if email is not None:
            credentials["email"] = email
        form = dict(credentials)
        if name is not None:
            form["name"] = name

        response = await async_client.post("/api/v1/auth/register", data=form)
        assert response.status_code == 201, response.text
        user_id = response.json()["userId"]

        login = await async_client.post("/api/v1/auth/login", json=credentials)
        assert login.status_code == 200, login.text
        token = login.json()["token"]
        return {
            "id": user_id,
            "email": credentials["email"],
            "password": credentials["password"],
            "token": token,
            "headers": {"Authorization": f"Bearer {token}"},
        }

    return _register
