"""
Pytest configuration and fixtures.

Tests run against an in-memory SQLite database (aiosqlite). Settings are
pointed at it before the application modules are imported.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("DEBUG", "false")

from collections.abc import AsyncGenerator, Callable
from typing import Any
from uuid import uuid4

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from byggportal.auth.dependencies import AuthenticatedUser, get_current_user
from byggportal.auth.models import User
from byggportal.core.database import Base, get_db
from byggportal.core.errors import NotAuthenticatedError
from byggportal.main import app
from byggportal.projects.models import (
    MemberStatus,
    Project,
    ProjectMember,
    ProjectRole,
    RoleName,
)
from byggportal.projects.permissions import (
    get_all_roles,
    get_role_description,
    get_role_display_name,
    get_role_permissions,
)
from byggportal.projects.schemas import ProjectCreate
from byggportal.projects.services import ProjectService, utcnow


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "api: tests that go through the HTTP application"
    )


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session


@pytest.fixture
async def roles(db: AsyncSession) -> dict[RoleName, ProjectRole]:
    """The four seeded project roles."""
    seeded = {}
    for name in get_all_roles():
        role = ProjectRole(
            name=name,
            display_name=get_role_display_name(name),
            description=get_role_description(name),
            permissions=get_role_permissions(name),
        )
        db.add(role)
        seeded[name] = role
    await db.flush()
    return seeded


@pytest.fixture
def make_user(db: AsyncSession) -> Callable[..., Any]:
    """Factory for user profiles."""

    async def _make_user(email: str | None = None, full_name: str | None = None) -> User:
        user = User(
            id=uuid4(),
            email=email or f"user-{uuid4().hex[:8]}@example.se",
            full_name=full_name,
        )
        db.add(user)
        await db.flush()
        return user

    return _make_user


def as_caller(user: User) -> AuthenticatedUser:
    """The authenticated identity of a profile."""
    return AuthenticatedUser(id=user.id, email=user.email)


@pytest.fixture
async def owner(make_user: Callable[..., Any]) -> User:
    return await make_user("agare@example.se", "Anna Ägare")


@pytest.fixture
async def project(
    db: AsyncSession,
    roles: dict[RoleName, ProjectRole],
    owner: User,
) -> Project:
    """A project created through the service, so the owner is a member."""
    return await ProjectService(db).create_project(
        ProjectCreate(name="Kv. Eken", city="Uppsala"), owner.id
    )


@pytest.fixture
def add_member(
    db: AsyncSession,
    roles: dict[RoleName, ProjectRole],
) -> Callable[..., Any]:
    """Factory adding a user to a project with a given role."""

    async def _add_member(
        project: Project,
        user: User,
        role: RoleName,
        status: MemberStatus = MemberStatus.ACTIVE,
    ) -> ProjectMember:
        member = ProjectMember(
            project_id=project.id,
            user_id=user.id,
            role_id=roles[role].id,
            status=status,
            invited_at=utcnow(),
            joined_at=utcnow(),
        )
        db.add(member)
        await db.flush()
        return member

    return _add_member


@pytest.fixture
def caller() -> dict[str, AuthenticatedUser | None]:
    """Who the HTTP client is signed in as; tests set ``caller["user"]``."""
    return {"user": None}


@pytest.fixture
async def client(
    db: AsyncSession,
    caller: dict[str, AuthenticatedUser | None],
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client against the application, sharing the test session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db

    async def override_get_current_user() -> AuthenticatedUser:
        user = caller["user"]
        if user is None:
            raise NotAuthenticatedError()
        return user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
