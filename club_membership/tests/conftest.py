"""Pytest fixtures for service and API tests on a file-backed SQLite database.

Each test gets its own database file. Engines come from ``create_db_engine``,
so every transaction opens with ``BEGIN IMMEDIATE`` and concurrent sessions
queue for the write lock the way row locks queue them on Postgres.

Keep in mind when writing tests: a session that has read anything holds the
write lock until it commits or rolls back. Concurrency tests therefore use
short-lived sessions from ``session_maker`` rather than the ``session``
fixture.
"""

from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from uuid import UUID, uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from club_membership.core.config import settings
from club_membership.db import base  # noqa: F401
from club_membership.db import session as db_session
from club_membership.db.session import create_db_engine, create_session_maker, get_session, init_db
from club_membership.main import app
from club_membership.models.club import Club, ClubCreate, ClubVisibility
from club_membership.services.club_service import create_club


@pytest.fixture
async def engine(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AsyncGenerator[AsyncEngine]:
    engine = create_db_engine(f"sqlite+aiosqlite:///{tmp_path / 'clubs.db'}")
    await init_db(engine)

    # Point the module-level session maker at the test database as well
    monkeypatch.setattr(db_session, "engine", engine)
    monkeypatch.setattr(db_session, "async_session_maker", create_session_maker(engine))

    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_maker(engine)


@pytest.fixture
async def session(session_maker: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession]:
    """Provide a database session for tests that call services directly."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def auth_headers() -> Callable[[UUID], dict[str, str]]:
    """Build the identity headers the gateway would forward for a user."""

    def _headers(user_id: UUID) -> dict[str, str]:
        return {settings.user_id_header: str(user_id)}

    return _headers


@pytest.fixture
async def client(
    session_maker: async_sessionmaker[AsyncSession],
    monkeypatch: pytest.MonkeyPatch,
) -> AsyncGenerator[AsyncClient]:
    async def get_session_override() -> AsyncGenerator[AsyncSession]:
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_session] = get_session_override
    monkeypatch.setattr(app.state.limiter, "enabled", False)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def owner_id() -> UUID:
    return uuid4()


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


async def _make_club(session: AsyncSession, creator_id: UUID, visibility: ClubVisibility) -> Club:
    payload = ClubCreate(name=f"{visibility.value.title()} Readers", visibility=visibility, category="fiction")
    return await create_club(session, creator_id, payload)


@pytest.fixture
async def public_club(session: AsyncSession, owner_id: UUID) -> Club:
    return await _make_club(session, owner_id, ClubVisibility.PUBLIC)


@pytest.fixture
async def private_club(session: AsyncSession, owner_id: UUID) -> Club:
    return await _make_club(session, owner_id, ClubVisibility.PRIVATE)


@pytest.fixture
async def invite_only_club(session: AsyncSession, owner_id: UUID) -> Club:
    return await _make_club(session, owner_id, ClubVisibility.INVITE_ONLY)
