"""
Authentication strategies - how a request proves which account it is.

One class per AuthStrategy variant, all with the same interface:

    await authenticator.authenticate(request, db) -> Account

  TokenAuthenticator    "Authorization: Bearer <jwt>" header, falling back
                        to the "token" cookie set at login
  SessionAuthenticator  account id stored in the signed session cookie
                        (Starlette SessionMiddleware)
  BasicAuthenticator    "Authorization: Basic base64(email:password)",
                        checked against the password on every request

Credentials are read with FastAPI's security classes (OAuth2PasswordBearer,
APIKeyCookie, HTTPBasic), all with auto_error=False so a missing credential
surfaces as our own UnauthenticatedError. authapi.dependencies declares the
same scheme objects so the OpenAPI document advertises them.

The deployment picks one in settings (AUTH_STRATEGY); the app factory
resolves it once with select_authenticator() and stores the instance on
app.state. Individual routes may force a different one through
authapi.dependencies.current_account(strategy).

Every strategy re-reads the account and refuses a locked one with
AccountLockedError. A valid token or session alone is not enough.
"""

import uuid

from fastapi import HTTPException, Request
from fastapi.security import APIKeyCookie, HTTPBasic, HTTPBasicCredentials, OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from authapi.config import AuthStrategy
from authapi.exceptions import (
    AccountLockedError,
    InvalidCredentialsError,
    UnauthenticatedError,
)
from authapi.models.account import Account
from authapi.security import TokenIssuer
from authapi.services import account_service

TOKEN_COOKIE_NAME = "token"
SESSION_ACCOUNT_KEY = "account_id"

# The tokenUrl points at the login endpoint (used by Swagger UI's
# "Authorize" button).
bearer_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)
token_cookie_scheme = APIKeyCookie(name=TOKEN_COOKIE_NAME, auto_error=False)
basic_scheme = HTTPBasic(auto_error=False)


class Authenticator:
    """Resolves a request to an Account or raises."""

    strategy: AuthStrategy

    async def authenticate(self, request: Request, db: AsyncSession) -> Account:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Token
# ---------------------------------------------------------------------------

async def read_bearer_token(request: Request) -> str | None:
    """Bearer header first, then the httpOnly cookie."""
    return await bearer_scheme(request) or await token_cookie_scheme(request) or None


class TokenAuthenticator(Authenticator):
    strategy = AuthStrategy.TOKEN

    def __init__(self, issuer: TokenIssuer):
        self.issuer = issuer

    async def authenticate(self, request: Request, db: AsyncSession) -> Account:
        token = await read_bearer_token(request)
        if token is None:
            raise UnauthenticatedError("Not authorized to access this route")

        claims = self.issuer.verify(token)
        if claims is None:
            raise UnauthenticatedError()

        account = await account_service.find_account(db, claims.account_id)
        if account is None:
            raise UnauthenticatedError()
        if account.locked:
            raise AccountLockedError()
        return account


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

def sessions_available(request: Request) -> bool:
    return "session" in request.scope


def start_session(request: Request, account: Account) -> None:
    if sessions_available(request):
        request.session[SESSION_ACCOUNT_KEY] = str(account.id)


def end_session(request: Request) -> None:
    if sessions_available(request):
        request.session.clear()


class SessionAuthenticator(Authenticator):
    strategy = AuthStrategy.SESSION

    async def authenticate(self, request: Request, db: AsyncSession) -> Account:
        raw_id = request.session.get(SESSION_ACCOUNT_KEY) if sessions_available(request) else None
        if not raw_id:
            raise UnauthenticatedError("Not authorized - please log in")

        try:
            account_id = uuid.UUID(raw_id)
        except (TypeError, ValueError):
            end_session(request)
            raise UnauthenticatedError()

        account = await account_service.find_account(db, account_id)
        if account is None:
            end_session(request)
            raise UnauthenticatedError()
        if account.locked:
            end_session(request)
            raise AccountLockedError()
        return account


# ---------------------------------------------------------------------------
# HTTP Basic
# ---------------------------------------------------------------------------

async def read_basic_credentials(request: Request) -> HTTPBasicCredentials | None:
    """
    Email and password from a Basic header. None when the header is absent,
    undecodable, or missing either half.
    """
    try:
        credentials = await basic_scheme(request)
    except HTTPException:
        # HTTPBasic raises on a malformed header even with auto_error=False
        return None
    if credentials is None or not credentials.username or not credentials.password:
        return None
    return credentials


class BasicAuthenticator(Authenticator):
    strategy = AuthStrategy.BASIC

    async def authenticate(self, request: Request, db: AsyncSession) -> Account:
        credentials = await read_basic_credentials(request)
        if credentials is None:
            raise UnauthenticatedError("Basic authentication required", scheme="Basic")

        # Full password check: failed attempts count toward the lockout
        try:
            return await account_service.authenticate(
                db, email=credentials.username, password=credentials.password
            )
        except InvalidCredentialsError:
            raise UnauthenticatedError("Invalid email or password", scheme="Basic")


def select_authenticator(strategy: AuthStrategy, issuer: TokenIssuer) -> Authenticator:
    """Map a strategy to its implementation."""
    strategy = AuthStrategy(strategy)
    if strategy == AuthStrategy.SESSION:
        return SessionAuthenticator()
    if strategy == AuthStrategy.BASIC:
        return BasicAuthenticator()
    return TokenAuthenticator(issuer)
