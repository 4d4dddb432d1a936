"""
Tracklane Backend: Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy (all function-scoped):
    ├── mock_db_session: AsyncMock session for orchestration tests
    ├── db_engine: file-backed sqlite+aiosqlite engine with the schema created
    │   └── session_factory: async_sessionmaker bound to db_engine
    │       ├── seeded_team: workspace "acme" with its default team ENG
    │       ├── bare_team: workspace + team without a sequence counter row
    │       └── test_client: HTTPX AsyncClient wired to session_factory
"""

import os

# Override settings for testing BEFORE any tracklane imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["TX_RETRY_MIN_WAIT"] = "0"
os.environ["TX_RETRY_MAX_WAIT"] = "0"

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tracklane.database import Base, build_engine, get_session_factory
from tracklane.models.issue import Issue, IssueChangeEvent  # noqa: F401
from tracklane.models.sequence import SequenceCounter  # noqa: F401
from tracklane.models.workspace import Team, Workspace
from tracklane.services.team_service import workspace_service


# ══════════════════════════════════════════════════════════════════════════
# Mocked Session
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_db_session():
    """
    Provides a mock async database session.

    Usage:
        async def test_next(mock_db_session):
            mock_db_session.execute.return_value.scalar_one_or_none.return_value = 7
            value = await sequence_allocator.next(mock_db_session, ws_id, team_id)

    get_bind() reports the postgresql dialect so dialect-aware statements
    can be built; begin_nested() works as an async context manager.
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    session.add_all = MagicMock()
    session.begin_nested = MagicMock()

    bind = MagicMock()
    bind.dialect.name = "postgresql"
    session.get_bind = MagicMock(return_value=bind)
    return session


# ══════════════════════════════════════════════════════════════════════════
# Real Database (SQLite file per test)
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """
    A fresh SQLite database file with all tables created.

    File-backed (not :memory:) so that concurrent sessions use separate
    connections and queue on the database lock like real writers.
    """
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'tracklane_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def seeded_team(session_factory) -> Team:
    """Workspace 'acme' ("Engineering") and its default team ENG, counter at 0."""
    async with session_factory() as session:
        async with session.begin():
            _, team = await workspace_service.create_workspace(
                session, slug="acme", display_name="Engineering"
            )
    return team


@pytest_asyncio.fixture
async def bare_team(session_factory) -> Team:
    """A team inserted directly, without a sequence_counter row."""
    async with session_factory() as session:
        async with session.begin():
            workspace = Workspace(slug="bare", display_name="Bare")
            session.add(workspace)
            await session.flush()
            team = Team(workspace_id=workspace.id, name="Ops", key="OPS")
            session.add(team)
    return team


@pytest_asyncio.fixture
async def test_client(session_factory):
    """
    HTTPX AsyncClient talking to the FastAPI app through ASGITransport,
    with every session dependency pointed at the test database.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    from tracklane.main import app

    app.dependency_overrides[get_session_factory] = lambda: session_factory
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
