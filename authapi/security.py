"""
Security utilities: password hashing, JWT tokens, and password-reset tokens.

This module centralizes all cryptographic operations so they're easy to
audit and update. Three concerns are handled here:

1. PASSWORD HASHING (Argon2)
   - Passwords are never stored in plaintext
   - Argon2id is memory-hard and time-hard, so GPU brute force is expensive
   - passlib's CryptContext provides salting, encoding and constant-time
     verification

2. JWT TOKENS (JSON Web Tokens)
   - After login, the account receives a signed JWT carrying its id and role
   - Signed with SECRET_KEY using HS256 (HMAC-SHA256)
   - Tokens expire after ACCESS_TOKEN_EXPIRE_DAYS (default: 30 days)
   - Verification needs no server-side state; callers still re-fetch the
     account to confirm it exists and is not locked

3. PASSWORD-RESET TOKENS
   - 20 random bytes, hex encoded, handed to the requester exactly once
   - Only the SHA-256 digest is stored. A fast digest is enough here because
     the token is already high-entropy, unlike a user-chosen password
   - Valid for RESET_TOKEN_EXPIRE_MINUTES (default: 10 minutes)

Hashing is CPU-bound. Async callers run hash_password/verify_password
through fastapi.concurrency.run_in_threadpool so the event loop keeps
serving other requests.
"""

import hashlib
import hmac
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache

from jose import JWTError, jwt
from passlib.context import CryptContext

from authapi.config import Settings
from authapi.models.account import Role


# ---------------------------------------------------------------------------
# 1. Password Hashing (Argon2)
# ---------------------------------------------------------------------------

# CryptContext manages hashing schemes. "argon2" is the active scheme.
# If the scheme ever changes, old hashes keep verifying with the original
# scheme and new passwords use the new one ("deprecated='auto'").
pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(plain_password: str) -> str:
    """
    Hash a plaintext password using Argon2id.

    Every call generates a fresh salt, so hashing the same password twice
    yields two different strings.

    Args:
        plain_password: The user's raw password input.

    Returns:
        An Argon2 hash string (e.g., "$argon2id$v=19$m=65536,t=3,p=4$...").
    """
    return pwd_context.hash(plain_password)


def verify_password(plain_password: str | None, hashed_password: str | None) -> bool:
    """
    Verify a plaintext password against a stored Argon2 hash.

    This is a constant-time comparison to prevent timing attacks. An empty
    password or a hash passlib cannot parse is a mismatch, never an error.

    Args:
        plain_password: The password the user just typed.
        hashed_password: The hash stored in the database.

    Returns:
        True if the password matches, False otherwise.
    """
    if not plain_password or not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # Unknown or malformed hash format
        return False


@lru_cache(maxsize=1)
def dummy_password_hash() -> str:
    """
    A real Argon2 hash used to burn the same time as a genuine check when
    the email is unknown, so response time does not reveal whether an
    account exists.
    """
    return pwd_context.hash(secrets.token_urlsafe(16))


# ---------------------------------------------------------------------------
# 2. JWT Tokens
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenClaims:
    """The verified contents of a bearer token."""
    account_id: uuid.UUID
    role: Role
    issued_at: datetime
    expires_at: datetime


class TokenIssuer:
    """
    Issues and verifies signed bearer tokens.

    Built once from the Settings object and shared for the life of the
    process; the secret and lifetime are read-only after construction.
    """

    def __init__(self, settings: Settings):
        self._secret = settings.SECRET_KEY
        self._algorithm = settings.ALGORITHM
        self.lifetime = settings.access_token_lifetime

    def issue(
        self,
        account_id: uuid.UUID,
        role: Role,
        expires_delta: timedelta | None = None,
    ) -> str:
        """
        Create a signed JWT access token.

        The token payload contains:
          - "sub": The subject (account ID as string) - standard JWT claim
          - "role": The account's role at issuance time
          - "iat": Issued-at timestamp
          - "exp": Expiration timestamp - after this, the token is rejected

        Args:
            account_id: The account the token identifies.
            role: The account's role.
            expires_delta: Optional custom lifetime. Defaults to
                           ACCESS_TOKEN_EXPIRE_DAYS from settings.

        Returns:
            An encoded JWT string.
        """
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta if expires_delta is not None else self.lifetime)
        payload = {
            "sub": str(account_id),
            "role": Role(role).value,
            "iat": now,
            "exp": expire,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> TokenClaims | None:
        """
        Decode and verify a JWT access token.

        Returns None if the token is malformed, its signature does not
        match, it has expired, or its claims are missing or ill-typed.
        """
        if not token:
            return None
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except JWTError:
            return None

        try:
            account_id = uuid.UUID(payload["sub"])
            role = Role(payload["role"])
            issued_at = datetime.fromtimestamp(payload["iat"], tz=timezone.utc)
            expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
        except (KeyError, TypeError, ValueError):
            return None

        return TokenClaims(
            account_id=account_id,
            role=role,
            issued_at=issued_at,
            expires_at=expires_at,
        )


# ---------------------------------------------------------------------------
# 3. Password-Reset Tokens
# ---------------------------------------------------------------------------

RESET_TOKEN_BYTES = 20
DEFAULT_RESET_WINDOW = timedelta(minutes=10)


@dataclass(frozen=True)
class ResetToken:
    """A freshly generated reset token. Only token_hash is ever persisted."""
    cleartext: str
    token_hash: str
    expires_at: datetime


def hash_reset_token(cleartext: str) -> str:
    """SHA-256 hex digest of a reset token."""
    return hashlib.sha256(cleartext.encode()).hexdigest()


def generate_reset_token(window: timedelta = DEFAULT_RESET_WINDOW) -> ResetToken:
    """
    Generate a one-time password reset token.

    Args:
        window: How long the token stays valid from now.

    Returns:
        ResetToken with the cleartext (for the requester), its digest
        (for storage) and its absolute expiry.
    """
    cleartext = secrets.token_hex(RESET_TOKEN_BYTES)
    return ResetToken(
        cleartext=cleartext,
        token_hash=hash_reset_token(cleartext),
        expires_at=datetime.now(timezone.utc) + window,
    )


def reset_token_matches(cleartext: str, stored_hash: str | None) -> bool:
    """Recompute the digest of a presented token and compare in constant time."""
    if not cleartext or not stored_hash:
        return False
    return hmac.compare_digest(hash_reset_token(cleartext), stored_hash)
