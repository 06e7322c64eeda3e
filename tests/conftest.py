"""
Test fixtures for the Auth API test suite.

This module provides shared fixtures used across all test files:

  - settings: Test configuration (in-memory DB, fixed secrets)
  - db_engine / db_session: Fresh in-memory SQLite database for each test
  - file_engine / file_sessionmaker: File-backed SQLite for concurrency tests,
    where every concurrent task gets its own connection
  - client: Async HTTP test client (unauthenticated)
  - build_client: Factory for clients of apps with overridden settings
    (e.g. a different AUTH_STRATEGY)
  - authenticated_client: Client with a registered STANDARD account and JWT
  - admin_client: Client with a registered ADMINISTRATOR account and JWT

Key design decisions:
  - In-memory SQLite (sqlite+aiosqlite://) is used for speed and isolation.
    Each test gets a completely fresh database - no state leaks between tests.
  - The app is built with create_app(settings) and its session factory is
    pointed at the test engine, so application code runs exactly as in
    production.
  - Argon2 is swapped for a low-cost configuration. Hashes still go through
    the real argon2 backend; only memory/time cost is reduced.
  - The admin_client fixture creates an admin by registering normally and
    then directly updating the role in the DB - the same way the operator
    script in demo/ provisions administrators.
"""

import uuid
from contextlib import asynccontextmanager

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from passlib.context import CryptContext
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from authapi import security
from authapi.config import Settings
from authapi.database import Base
from authapi.main import create_app
from authapi.models.account import Account, Role


# In-memory SQLite for fast, isolated tests
TEST_DATABASE_URL = "sqlite+aiosqlite://"

STANDARD_USER = {
    "name": "Test User",
    "email": "testuser@example.com",
    "password": "SecurePass123!",
}

ADMIN_USER = {
    "name": "Admin User",
    "email": "admin@example.com",
    "password": "AdminPass123!",
}


def make_settings(**overrides) -> Settings:
    values = {
        "DATABASE_URL": TEST_DATABASE_URL,
        "SECRET_KEY": "test-secret-key-that-is-long-enough-for-hs256",
        "SESSION_SECRET": "test-session-secret",
        "_env_file": None,
    }
    values.update(overrides)
    return Settings(**values)


def register_payload(name: str, email: str, password: str) -> dict:
    return {
        "name": name,
        "email": email,
        "password": password,
        "password_confirm": password,
    }


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    """Cheap Argon2 parameters so the suite (and concurrent tests) stay fast."""
    monkeypatch.setattr(
        security,
        "pwd_context",
        CryptContext(
            schemes=["argon2"],
            argon2__memory_cost=1024,
            argon2__time_cost=1,
            argon2__parallelism=1,
        ),
    )


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def issuer(settings) -> security.TokenIssuer:
    return security.TokenIssuer(settings)


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh async engine with all tables for each test."""
    engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    """Provide an async session bound to the test engine."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with async_session() as session:
        yield session


@pytest_asyncio.fixture
async def file_engine(tmp_path):
    """
    File-backed SQLite engine. Unlike the in-memory engine (one shared
    connection), each checkout is a separate connection, so concurrent tasks
    really contend on the database.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'auth.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def file_sessionmaker(file_engine):
    return async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def build_client(db_engine):
    """
    Return an async context manager that yields a client for an app built
    with the given settings overrides, sharing the test database.
    """

    @asynccontextmanager
    async def _build(**overrides):
        app = create_app(make_settings(**overrides))
        await app.state.engine.dispose()
        app.state.engine = db_engine
        app.state.sessionmaker = async_sessionmaker(
            db_engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac

    return _build


@pytest_asyncio.fixture
async def client(build_client):
    """Async HTTP test client with the test database injected."""
    async with build_client() as ac:
        yield ac


async def promote_to_admin(db_engine, account_id: uuid.UUID) -> None:
    async_session = async_sessionmaker(
        db_engine, class_=AsyncSession, expire_on_commit=False,
    )
    async with async_session() as session:
        await session.execute(
            update(Account)
            .where(Account.id == account_id)
            .values(role=Role.ADMINISTRATOR)
        )
        await session.commit()


@pytest_asyncio.fixture
async def authenticated_client(client):
    """
    Test client with a pre-registered account and JWT token.

    Registers via the real endpoint, then sets the Authorization header on
    the client for all subsequent requests.
    """
    response = await client.post("/auth/register", json=register_payload(**STANDARD_USER))
    assert response.status_code == 201, f"Register failed: {response.text}"
    token = response.json()["token"]
    client.headers["Authorization"] = f"Bearer {token}"
    return client


@pytest_asyncio.fixture
async def admin_client(build_client, db_engine):
    """
    Test client with a pre-registered ADMINISTRATOR account and JWT token.

    Uses its own client (own cookie jar) so it can be combined with
    authenticated_client in one test.
    """
    async with build_client() as ac:
        response = await ac.post("/auth/register", json=register_payload(**ADMIN_USER))
        assert response.status_code == 201
        await promote_to_admin(db_engine, uuid.UUID(response.json()["account"]["id"]))

        # Log in again so the token carries the administrator role
        login_response = await ac.post(
            "/auth/login",
            json={"email": ADMIN_USER["email"], "password": ADMIN_USER["password"]},
        )
        assert login_response.status_code == 200
        ac.headers["Authorization"] = f"Bearer {login_response.json()['token']}"
        yield ac
