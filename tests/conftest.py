"""Shared test fixtures for WorkflowGuard tests.

Uses SQLite + aiosqlite for a fast, self-contained test database.
"""

from __future__ import annotations

import os
import uuid
from datetime import datetime, timezone

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Keep the app's module-level engine off Postgres during tests
os.environ.setdefault("WG_DATABASE_URL", TEST_DATABASE_URL)

from workflowguard.config import settings
from workflowguard.database import build_engine, build_session_factory
from workflowguard.models.api_key import ApiKey
from workflowguard.models.base import Base
from workflowguard.models.user import User
from workflowguard.models.workflow import Workflow
from workflowguard.versioning.service import VersionHistoryService

# Import all models so Base.metadata has them
import workflowguard.models  # noqa: F401


# ---------------------------------------------------------------------------
# Test database engine (SQLite in-memory via aiosqlite)
# ---------------------------------------------------------------------------

test_engine = build_engine(TEST_DATABASE_URL, echo=False)
TestSessionLocal = build_session_factory(test_engine)


@pytest_asyncio.fixture
async def db_session():
    """Create tables and yield a fresh async session for each test."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    user = User(id=uuid.uuid4(), email="owner@example.com", name="Olivia Owner")
    db_session.add(user)
    await db_session.flush()
    return user


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    user = User(id=uuid.uuid4(), email="reviewer@example.com", name="Rey Reviewer")
    db_session.add(user)
    await db_session.flush()
    return user


@pytest_asyncio.fixture
async def test_workflow(db_session: AsyncSession, test_user: User) -> Workflow:
    workflow = Workflow(
        id=uuid.uuid4(),
        external_id="hs-1001",
        name="Lead nurture",
        owner_id=test_user.id,
    )
    db_session.add(workflow)
    await db_session.flush()
    return workflow


@pytest_asyncio.fixture
async def other_workflow(db_session: AsyncSession, test_user: User) -> Workflow:
    workflow = Workflow(
        id=uuid.uuid4(),
        external_id="hs-2002",
        name="Renewal reminders",
        owner_id=test_user.id,
    )
    db_session.add(workflow)
    await db_session.flush()
    return workflow


@pytest_asyncio.fixture
async def service(db_session: AsyncSession) -> VersionHistoryService:
    return VersionHistoryService(db_session)


# ---------------------------------------------------------------------------
# Override FastAPI dependencies for tests
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def test_api_key(db_session: AsyncSession, test_user: User) -> str:
    """Create a test API key and return the raw key string."""
    raw_key = "wg_test_key_abc123"
    api_key = ApiKey(
        id=uuid.uuid4(),
        user_id=test_user.id,
        key_hash=ApiKey.hash_key(raw_key, settings.api_key_salt),
        name="test-key",
        is_active=True,
        created_at=datetime.now(timezone.utc),
    )
    db_session.add(api_key)
    await db_session.flush()
    return raw_key


@pytest_asyncio.fixture
async def auth_headers(test_api_key: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {test_api_key}"}


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, test_api_key: str) -> AsyncClient:
    """Create an httpx AsyncClient wired to the FastAPI app with test DB overrides."""
    from workflowguard.database import get_db
    from workflowguard.main import app

    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()
