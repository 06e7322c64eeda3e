"""
Account model - the authentication identity and its credential state.

Each Account holds everything the auth core needs to decide whether a
login should succeed:

  - identity: id, display name, unique lower-cased email
  - credential: Argon2id hash of the password (never the plaintext)
  - role: STANDARD or ADMINISTRATOR, exact-match for authorization
  - lock state: locked flag + consecutive failed-attempt counter
  - reset state: SHA-256 of a one-time reset token + absolute expiry
  - audit: last successful login, creation time

Roles:
  - STANDARD: default for every self-service registration
  - ADMINISTRATOR: can unlock, list, create, edit and delete accounts.
    Only granted by another administrator or the operator script in demo/.

The lock/reset/credential columns are only ever mutated through
authapi.services.account_service; nothing else writes them.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Enum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from authapi.database import Base


class Role(str, enum.Enum):
    """
    The closed set of roles an account can hold.

    Inherits from str so the enum value serializes naturally to JSON
    and can be stored as a simple string in the database.
    """
    STANDARD = "standard"
    ADMINISTRATOR = "administrator"


class Account(Base):
    __tablename__ = "accounts"

    # Primary key: UUID provides globally unique IDs without sequential guessing
    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    # Login identifier. Always stored stripped and lower-cased; the unique
    # index is what finally decides between two concurrent registrations.
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )

    # Argon2id hash of the password (never store plaintext!)
    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    role: Mapped[Role] = mapped_column(
        Enum(Role),
        default=Role.STANDARD,
        nullable=False,
    )

    # --- Lockout ---
    locked: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    failed_attempts: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    # --- Password reset ---
    # SHA-256 hex digest of the cleartext token; both columns are NULL
    # unless a reset is pending.
    reset_token_hash: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        index=True,
    )
    reset_token_expiry: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # --- Audit ---
    last_successful_login: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, email={self.email!r})>"
