"""Shared fixtures for Secudo tests."""

from __future__ import annotations

from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from secudo.api.app import _db, app, initialize_state, limiter
from secudo.auth_providers.user_account import issue_token
from secudo.core.models import User
from secudo.storage.database import Database
from secudo.trash import TrashManager


def _user_factory(database: Database):
    async def create(role: str | None = "Viewer", email: str | None = None) -> User:
        tag = uuid4().hex[:8]
        user = User(
            email=email or f"user-{tag}@example.com",
            first_name="Test",
            last_name=tag,
            name=f"Test {tag}",
            role=role,
        )
        await database.insert_user(user)
        return user

    return create


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(user)}"}


@pytest_asyncio.fixture
async def db(tmp_path):
    """Fresh, fully migrated database for each test."""
    database = Database(tmp_path / "test.db")
    await database.connect()
    await database.run_migrations()
    yield database
    await database.close()


@pytest_asyncio.fixture
async def legacy_db(tmp_path):
    """Database on the base schema only (no ``deleted_at`` column)."""
    database = Database(tmp_path / "legacy.db")
    await database.connect()
    yield database
    await database.close()


@pytest.fixture
def trash(db):
    return TrashManager(db, supports_deleted_at=True)


@pytest.fixture
def make_user(db):
    """Factory inserting users straight into the unit-test database."""
    return _user_factory(db)


@pytest_asyncio.fixture
async def client(tmp_path):
    """HTTP test client wired to a fresh database."""
    # Swap the global DB for tests
    _db.db_path = tmp_path / "api_test.db"
    await _db.connect()
    await _db.run_migrations()
    await initialize_state(app, _db)

    # Disable rate limiter for tests
    limiter.enabled = False

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await _db.close()


@pytest.fixture
def api_user(client):
    """Factory returning ``(user, headers)`` for a new account in the API database."""
    create = _user_factory(_db)

    async def create_with_headers(role: str | None = "Viewer", email: str | None = None):
        user = await create(role, email)
        return user, auth_headers(user)

    return create_with_headers


@pytest.fixture
def create_project(client):
    """Factory creating a project through the API and returning its JSON."""

    async def create(headers: dict[str, str], **body) -> dict:
        body.setdefault("name", "Plant network")
        resp = await client.post("/projects", json=body, headers=headers)
        assert resp.status_code == 201, resp.text
        return resp.json()

    return create
