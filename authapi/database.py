"""
Database engine, session management, and base model class.

This module sets up SQLAlchemy 2.0 with async support. Key components:

  - build_engine(): Creates the async engine from the settings object
  - build_sessionmaker(): Factory for creating async database sessions
  - Base: Declarative base class that all ORM models inherit from
  - get_db(): FastAPI dependency that provides a session per request

Architecture note:
  The engine and session factory are built once by the app factory and
  stored on app.state, so tests can hand the factory an in-memory database
  without touching module globals. When migrating to PostgreSQL, only
  DATABASE_URL needs to change (to use the asyncpg driver).

Session lifecycle:
  Each API request gets its own session via get_db(). The session commits
  on success and rolls back on unexpected exceptions, ensuring data
  consistency.
"""

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from authapi.config import Settings
from authapi.exceptions import AuthAPIError


def build_engine(settings: Settings) -> AsyncEngine:
    """
    Create the async engine.

    echo=True in debug mode logs all SQL statements. Only password hashes
    ever appear in INSERT/UPDATE statements, never plaintext.
    """
    return create_async_engine(
        settings.DATABASE_URL,
        echo=settings.DEBUG,
    )


def build_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False prevents lazy-load errors after commit -
    # without this, accessing attributes on a committed object would trigger
    # a synchronous DB call, which fails in async context.
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    All models inherit from this class, which provides:
      - Metadata tracking for table creation and migrations
      - Common declarative mapping features
    """
    pass


async def get_db(request: Request):
    """
    FastAPI dependency that provides a database session.

    Usage in a route:
        @router.get("/items")
        async def list_items(db: AsyncSession = Depends(get_db)):
            ...

    The session is committed on success and rolled back on any unexpected
    exception, then closed when the request completes.
    """
    session_factory: async_sessionmaker[AsyncSession] = request.app.state.sessionmaker
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except AuthAPIError:
            # Domain errors (e.g., InvalidCredentialsError) - commit so that
            # state recorded on the way to the error, like a failed-attempt
            # counter, is persisted.
            await session.commit()
            raise
        except Exception:
            await session.rollback()
            raise
