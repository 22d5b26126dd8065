"""Shared pytest fixtures for bug tracker tests."""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from bug_tracker.config import Settings
from bug_tracker.db.repository import RoleRepository
from bug_tracker.db.session import Database
from bug_tracker.main import create_app
from bug_tracker.models.models import User

ROLE_PERMISSIONS: dict[str, list[str]] = {
    "User": [],
    "Developer": ["canCreateBug", "canAddComments"],
    "Quality Analyst": ["canCreateBug", "canAddComments", "canEditAnyBug", "canCloseAnyBug"],
    "Admin": [
        "canCreateBug",
        "canAddComments",
        "canEditAnyBug",
        "canClassifyAnyBug",
        "canReassignAnyBug",
        "canCloseAnyBug",
        "canListUsers",
        "canEditAnyUser",
    ],
}

PASSWORD = "secret-pass"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        db_url="sqlite+aiosqlite://",
        db_name=":memory:",
        jwt_secret="test-signing-secret-that-is-long-enough-for-hs256",
        salt_rounds=4,
        frontend_dist=str(tmp_path / "dist"),
    )


@pytest.fixture
async def database(settings: Settings) -> AsyncIterator[Database]:
    """Fresh in-memory database with the roles seeded."""
    db = Database(settings)
    await db.create_schema()
    async with db.session() as session:
        roles = RoleRepository(session)
        for name, permissions in ROLE_PERMISSIONS.items():
            await roles.upsert_role(name, {p: True for p in permissions})
    yield db
    await db.dispose()


@pytest.fixture
async def session(database: Database) -> AsyncIterator[AsyncSession]:
    async with database.session() as s:
        yield s


@pytest.fixture
def app(settings: Settings, database: Database) -> FastAPI:
    return create_app(settings, database)


@pytest.fixture
async def make_client(app: FastAPI) -> AsyncIterator[Callable[[], AsyncClient]]:
    """Factory for independent clients, one cookie jar per simulated user."""
    clients: list[AsyncClient] = []

    def factory() -> AsyncClient:
        # https so the Secure auth cookie is sent back.
        c = AsyncClient(transport=ASGITransport(app=app), base_url="https://test")
        clients.append(c)
        return c

    yield factory
    for c in clients:
        await c.aclose()


@pytest.fixture
def client(make_client: Callable[[], AsyncClient]) -> AsyncClient:
    """Anonymous client."""
    return make_client()


SignIn = Callable[..., Awaitable[tuple[AsyncClient, str]]]


@pytest.fixture
def sign_in(make_client: Callable[[], AsyncClient], database: Database) -> SignIn:
    """Register a user, grant it the given role, and return (client, user_id) signed in."""
    counter = 0

    async def _sign_in(role: str = "User", email: str | None = None, **extra: str) -> tuple[AsyncClient, str]:
        nonlocal counter
        counter += 1
        c = make_client()
        body = {
            "email": email or f"user{counter}@example.com",
            "password": PASSWORD,
            "givenName": extra.get("givenName", f"Given{counter}"),
            "familyName": extra.get("familyName", f"Family{counter}"),
        }
        resp = await c.post("/api/users/register", json=body)
        assert resp.status_code == 201, resp.text
        user_id = resp.json()["userId"]
        if role != "User":
            async with database.session() as s:
                await s.execute(update(User).where(User.id == user_id).values(role=role))
                await s.commit()
            # Sign in again so the token carries the granted role.
            resp = await c.post("/api/users/login", json={"email": body["email"], "password": PASSWORD})
            assert resp.status_code == 200, resp.text
        return c, user_id

    return _sign_in
