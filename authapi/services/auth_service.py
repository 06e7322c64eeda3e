"""
Authentication service - the token-issuing operations.

This module pairs account lifecycle operations with bearer-token issuance.
The router calls these functions and translates the results into HTTP
responses (body + cookie). The business logic can be tested without
spinning up a web server.

Register flow:
  1. account_service.register (unique email, STANDARD role, hashed password)
  2. Issue a JWT so the account is immediately logged in

Login flow:
  1. account_service.authenticate (lockout policy applied atomically)
  2. Issue a JWT

Reset flow:
  1. request_password_reset stores a token digest and returns the cleartext,
     or None when the email is unknown - the HTTP layer answers both the same
  2. reset_password consumes the token, sets the password, issues a JWT
     unless the account is locked

Security notes:
  - Login returns the same error for "wrong password" and "email not found"
    to prevent user enumeration attacks
  - JWT tokens are stateless - logout clears the cookie and session only
"""

import logging
import uuid
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from authapi.exceptions import AccountNotFoundError
from authapi.models.account import Account
from authapi.security import DEFAULT_RESET_WINDOW, TokenIssuer
from authapi.services import account_service

logger = logging.getLogger("authapi.auth")


async def register(
    db: AsyncSession,
    issuer: TokenIssuer,
    name: str,
    email: str,
    password: str,
) -> tuple[Account, str]:
    """
    Register a new account and log it in.

    Returns:
        Tuple of (Account instance, JWT token string).

    Raises:
        DuplicateEmailError: If the email is already registered.
    """
    account = await account_service.register(db, name=name, email=email, password=password)
    return account, issuer.issue(account.id, account.role)


async def login(
    db: AsyncSession,
    issuer: TokenIssuer,
    email: str,
    password: str,
) -> tuple[Account, str]:
    """
    Authenticate an account and return a JWT token.

    Returns:
        Tuple of (Account instance, JWT token string).

    Raises:
        InvalidCredentialsError: If email doesn't exist or password is wrong.
        AccountLockedError: If the account is locked.
    """
    account = await account_service.authenticate(db, email=email, password=password)
    return account, issuer.issue(account.id, account.role)


async def request_password_reset(
    db: AsyncSession,
    email: str,
    window: timedelta = DEFAULT_RESET_WINDOW,
) -> str | None:
    """
    Start a password reset.

    Returns:
        The cleartext reset token, or None if no account has this email.
        Callers must not let the two outcomes look different to the client.
    """
    try:
        return await account_service.request_reset(db, email=email, window=window)
    except AccountNotFoundError:
        logger.info("Password reset requested for unknown email")
        return None


async def reset_password(
    db: AsyncSession,
    issuer: TokenIssuer,
    reset_token: str,
    new_password: str,
) -> tuple[Account, str | None]:
    """
    Set a new password with a reset token and log the account in.

    A reset does not clear the lock. For a locked account the password is
    still changed but no token is issued, since every request made with it
    would be refused until an administrator unlocks the account.

    Returns:
        Tuple of (Account instance, JWT token string or None if locked).

    Raises:
        InvalidOrExpiredTokenError: Unknown, already used, or expired token.
    """
    account = await account_service.consume_reset(db, reset_token, new_password)
    if account.locked:
        logger.info("Password reset for locked account %s, no token issued", account.id)
        return account, None
    return account, issuer.issue(account.id, account.role)


async def change_password(
    db: AsyncSession,
    issuer: TokenIssuer,
    account: Account,
    current_password: str,
    new_password: str,
) -> str:
    """
    Change the password and return a fresh token.

    Raises:
        WrongCurrentPasswordError: If current_password doesn't match.
    """
    await account_service.change_password(db, account, current_password, new_password)
    return issuer.issue(account.id, account.role)


async def admin_unlock(db: AsyncSession, account_id: uuid.UUID) -> Account:
    """
    Raises:
        AccountNotFoundError: If the account doesn't exist.
    """
    return await account_service.admin_unlock(db, account_id)
