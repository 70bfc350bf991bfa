"""
Pytest configuration and fixtures for engagement service tests
"""

import os
import sys
from collections.abc import AsyncGenerator
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))  # noqa: PTH100, PTH118, PTH119, PTH120

# Import Base first, before importing the app
from app.database import Base, build_engine, get_db
from app.models.category import Category
from app.models.content import Content, ContentStatus
from app.models.user import User
from utils.mock_utils import make_auth_headers

# Test database URL - a file-backed SQLite database so that separate
# sessions really are separate connections. NullPool opens every connection
# on the running test's event loop.
# Can be overridden with TEST_DATABASE_URL environment variable
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///./test_engagement.db")

# Create test engine and session maker BEFORE importing the app
test_engine = build_engine(TEST_DATABASE_URL, poolclass=NullPool)

TestSessionLocal = async_sessionmaker(test_engine, class_=AsyncSession, autoflush=False, expire_on_commit=False)

# Now import and patch the app's database components
import app.database as database_module  # noqa: E402
from app.middleware.rate_limit import limiter  # noqa: E402
from app.services.discovery_service import discovery_service  # noqa: E402
from main import app  # noqa: E402

database_module.engine = test_engine
database_module.AsyncSessionLocal = TestSessionLocal


async def override_get_db():
    async with TestSessionLocal() as session:
        yield session


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(scope="function")
async def setup_test_database():
    """
    Create a fresh schema for each test function that needs it.
    """
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(scope="function")
async def test_db(setup_test_database) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for tests that need it."""
    async with TestSessionLocal() as session:
        yield session


@pytest.fixture
def session_factory(setup_test_database):
    """Session maker for tests that need several independent sessions."""
    return TestSessionLocal


@pytest.fixture(autouse=True)
def reset_shared_state():
    """Discovery cache and rate limiter are process-wide; start every test clean."""
    discovery_service.clear()
    limiter.reset()
    yield
    discovery_service.clear()


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def test_user(test_db: AsyncSession) -> User:
    """Create a test user"""
    user = User(username="testuser", email="testuser@example.com")
    test_db.add(user)
    await test_db.commit()
    await test_db.refresh(user)
    return user


@pytest.fixture
async def other_user(test_db: AsyncSession) -> User:
    """Create a second user"""
    user = User(username="otheruser", email="otheruser@example.com", avatar_url="https://cdn.example.com/a.png")
    test_db.add(user)
    await test_db.commit()
    await test_db.refresh(user)
    return user


@pytest.fixture
async def test_category(test_db: AsyncSession) -> Category:
    category = Category(name="Music", slug="music", icon="🎵")
    test_db.add(category)
    await test_db.commit()
    await test_db.refresh(category)
    return category


@pytest.fixture
async def test_content(test_db: AsyncSession, test_user: User, test_category: Category) -> Content:
    """Published content owned by test_user"""
    content = Content(
        title="Test Content",
        description="Something worth watching",
        media_url="https://cdn.example.com/video.mp4",
        status=ContentStatus.PUBLISHED,
        user_id=test_user.id,
        category_id=test_category.id,
    )
    test_db.add(content)
    await test_db.commit()
    await test_db.refresh(content)
    return content


@pytest.fixture
def auth_headers(test_user: User) -> dict:
    """Generate authentication headers for test user"""
    return make_auth_headers(test_user.id)


@pytest.fixture
def other_auth_headers(other_user: User) -> dict:
    return make_auth_headers(other_user.id)
