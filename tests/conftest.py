"""Shared pytest fixtures for the permission service tests."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from datetime import datetime, timedelta, timezone

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core import config
from app.core.database.engine import enable_sqlite_foreign_keys, get_db, init_db
from app.features.permissions.repository import PermissionRepository
from app.features.permissions.roles import RoleRegistry
from app.features.users.models import User

TEST_JWT_SECRET = "test-secret"


@pytest_asyncio.fixture()
async def engine(tmp_path) -> AsyncIterator[AsyncEngine]:
    """Fresh file-backed SQLite database with all tables created."""

    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.sqlite'}", poolclass=NullPool)
    enable_sqlite_foreign_keys(test_engine)
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture()
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def seeded_db(db: AsyncSession) -> AsyncSession:
    """Session over a database holding the full catalog and the system roles."""

    await PermissionRepository(db).seed_catalog()
    await RoleRegistry(db).ensure_system_roles()
    return db


@pytest.fixture()
def make_user(db: AsyncSession) -> Callable[..., object]:
    """Create and persist a user profile."""

    async def _make(subject: str, role_id: str | None = None) -> User:
        user = User(
            subject=subject,
            email=f"{subject}@example.com",
            name=subject.title(),
            role_id=role_id,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    return _make


def make_token(subject: str, expires_in: timedelta = timedelta(minutes=5)) -> str:
    payload = {"sub": subject, "exp": datetime.now(timezone.utc) + expires_in}
    return jwt.encode(payload, TEST_JWT_SECRET, algorithm="HS256")


@pytest.fixture()
def auth_headers() -> Callable[..., dict[str, str]]:
    """Build Authorization headers carrying a token for a subject."""

    def _headers(subject: str, expires_in: timedelta = timedelta(minutes=5)) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(subject, expires_in)}"}

    return _headers


@pytest_asyncio.fixture()
async def async_client(
    session_factory: async_sessionmaker[AsyncSession],
    monkeypatch: pytest.MonkeyPatch,
) -> AsyncIterator[AsyncClient]:
    """HTTPX client bound to the app, with requests served from the test database."""

    from app.main import app

    monkeypatch.setattr(config, "JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setattr(config, "JWT_ALGORITHM", "HS256")

    async def _get_test_db() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_test_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()
