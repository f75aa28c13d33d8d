"""Test configuration and fixtures.

Each test gets its own SQLite database file:
1. The schema is created from the models at the start of the test
2. The application's session factory is pointed at that database, so HTTP
   requests, background tasks and direct service calls all see the same data
3. Fixtures that write must commit, since requests use their own sessions
"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest_asyncio
from dotenv import load_dotenv

# Load test environment variables before the settings module is imported
test_env_path = Path(__file__).parent.parent / ".env.test"
load_dotenv(test_env_path, override=True)

from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine  # noqa: E402

from shelfkeeper.config.settings import settings  # noqa: E402
from shelfkeeper.database import client as db_client  # noqa: E402
from shelfkeeper.database.base import Base  # noqa: E402
from shelfkeeper.features.oauth.clients import ClientRegistry, get_client_registry  # noqa: E402
from shelfkeeper.features.user.models import User  # noqa: E402
from shelfkeeper.main import app  # noqa: E402

TEST_PASSWORD = "TestPass123!"


# Database Setup - Function Scope (fresh database per test)


@pytest_asyncio.fixture
async def db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine]:
    """Create a file-backed SQLite engine with the full schema."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'shelfkeeper.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    db_client.configure_engine(engine)
    yield engine

    await db_client.close_db()


@pytest_asyncio.fixture
async def session(db_engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    """Session for arranging and inspecting test data."""
    async with db_client.get_session_factory()() as async_session:
        yield async_session


@pytest_asyncio.fixture
async def session_factory(db_engine: AsyncEngine):
    """The application's session factory, for tests that need independent sessions."""
    return db_client.get_session_factory()


# FastAPI Client


@pytest_asyncio.fixture
async def client(db_engine: AsyncEngine) -> AsyncGenerator[AsyncClient]:
    """Unauthenticated async HTTP test client."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def registry() -> ClientRegistry:
    """Client registry built from the test environment."""
    return get_client_registry()


# Test User Factories


@pytest_asyncio.fixture
async def make_user(session: AsyncSession):
    """Factory fixture to create committed test users.

    Usage:
        user = await make_user()
        alice = await make_user(username="alice", password="Secret123")
    """
    counter = 0

    async def _factory(username=None, email=None, full_name="Test User", password=TEST_PASSWORD) -> User:
        nonlocal counter
        counter += 1

        user = User(
            username=username or f"testuser{counter}",
            email=email or f"testuser{counter}@example.com",
            full_name=full_name,
            hashed_password=User.hash_password(password),
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user

    return _factory


@pytest_asyncio.fixture
async def login(client: AsyncClient):
    """Log a user in over HTTP and return the token response body."""

    async def _login(username: str, password: str = TEST_PASSWORD) -> dict:
        response = await client.post(
            f"{settings.api_prefix}/auth/login",
            json={"username": username, "password": password},
        )
        assert response.status_code == 200, response.text
        return response.json()

    return _login


@pytest_asyncio.fixture
async def auth_client(client: AsyncClient, make_user, login):
    """Client carrying a first-party access token for a fresh user.

    Returns:
        tuple: (client, user, headers)

    """
    user = await make_user()
    tokens = await login(user.username)
    headers = {"Authorization": f"Bearer {tokens['access_token']}"}
    yield client, user, headers
