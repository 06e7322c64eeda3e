"""
Account service - the account record lifecycle.

Every change to an account's credential, lock or reset state goes through
a function in this module. Routers, strategies and the auth service call
in here; none of them assign those columns directly.

This module handles:
  - Registration (unique, normalized email; role fixed to STANDARD)
  - Password authentication with the lockout policy applied atomically
  - Password reset: issuing and consuming one-time tokens
  - Password change and explicit re-hashing (set_password)
  - Administrative operations: unlock, list, create, update, delete

Ownership and roles:
  Self-service registration always yields a STANDARD account. Role changes
  only happen through admin_create_account / admin_update_account, which
  the router layer guards with require_admin.

Timing:
  Argon2 hashing runs in a thread pool (run_in_threadpool) so a burst of
  logins does not stall unrelated requests on the event loop.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone

from fastapi.concurrency import run_in_threadpool
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from authapi.exceptions import (
    AccountLockedError,
    AccountNotFoundError,
    CannotDeleteSelfError,
    DuplicateEmailError,
    InvalidCredentialsError,
    InvalidOrExpiredTokenError,
    WrongCurrentPasswordError,
)
from authapi.models.account import Account, Role
from authapi.security import (
    DEFAULT_RESET_WINDOW,
    dummy_password_hash,
    generate_reset_token,
    hash_password,
    hash_reset_token,
    verify_password,
)
from authapi.services import lockout

logger = logging.getLogger("authapi.accounts")


def normalize_email(email: str) -> str:
    """Emails are compared and stored stripped and lower-cased."""
    return email.strip().lower()


def escape_like(value: str) -> str:
    """Make LIKE wildcards in user input match literally (escape character: backslash)."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def get_by_email(db: AsyncSession, email: str) -> Account | None:
    result = await db.execute(
        select(Account).where(Account.email == normalize_email(email))
    )
    return result.scalar_one_or_none()


async def find_account(db: AsyncSession, account_id: uuid.UUID) -> Account | None:
    return await db.get(Account, account_id)


async def get_account(db: AsyncSession, account_id: uuid.UUID) -> Account:
    """
    Get a single account by id.

    Raises:
        AccountNotFoundError: If the account doesn't exist.
    """
    account = await find_account(db, account_id)
    if account is None:
        raise AccountNotFoundError(account_id)
    return account


async def _flush_new_email(db: AsyncSession, email: str) -> None:
    """
    Flush pending changes, reporting a unique-index violation on email as
    DuplicateEmailError. The pre-check in the callers handles the common
    case; this catches the race where two requests pass it together.
    """
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise DuplicateEmailError(email)


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

async def set_password(account: Account, new_password: str) -> None:
    """Re-hash and store a new password. Always hashes, never copies a hash."""
    account.password_hash = await run_in_threadpool(hash_password, new_password)


async def register(
    db: AsyncSession,
    name: str,
    email: str,
    password: str,
) -> Account:
    """
    Create a new STANDARD account.

    The email is normalized and checked before any hashing work is done.

    Args:
        db: Database session.
        name: Display name.
        email: Login email (must be unique, case-insensitive).
        password: Plaintext password (hashed before storage).

    Returns:
        The newly created Account.

    Raises:
        DuplicateEmailError: If the email is already registered.
    """
    email = normalize_email(email)
    if await get_by_email(db, email) is not None:
        raise DuplicateEmailError(email)

    account = Account(
        name=name,
        email=email,
        role=Role.STANDARD,
        locked=False,
        failed_attempts=0,
    )
    await set_password(account, password)
    db.add(account)
    await _flush_new_email(db, email)

    logger.info("Registered account %s", account.id)
    return account


async def authenticate(
    db: AsyncSession,
    email: str,
    password: str,
) -> Account:
    """
    Verify an email/password pair and apply the lockout policy.

    Order of checks:
      1. Unknown email -> InvalidCredentialsError (after a dummy hash check,
         so timing matches the wrong-password case)
      2. Locked account -> AccountLockedError, without looking at the password
      3. Wrong password -> counter incremented atomically; the attempt that
         reaches the threshold locks the account and reports AccountLockedError
      4. Correct password -> counter cleared, last_successful_login stamped

    Raises:
        InvalidCredentialsError: Email unknown or password wrong.
        AccountLockedError: Account is (or just became) locked.
    """
    account = await get_by_email(db, email)

    if account is None:
        await run_in_threadpool(verify_password, password, dummy_password_hash())
        raise InvalidCredentialsError()

    if lockout.lock_state(account).locked:
        logger.info("Rejected login for locked account %s", account.id)
        raise AccountLockedError()

    if not await run_in_threadpool(verify_password, password, account.password_hash):
        await _record_failed_attempt(db, account)

    now = datetime.now(timezone.utc)
    result = await db.execute(lockout.successful_login_statement(account.id, now))
    await db.refresh(account)
    if result.rowcount == 0:
        # Locked by a concurrent failed attempt after our read
        raise AccountLockedError()

    logger.info("Successful login for account %s", account.id)
    return account


async def _record_failed_attempt(db: AsyncSession, account: Account) -> None:
    """
    Persist one failed attempt and raise the matching error.

    The increment is committed immediately so the counter survives
    regardless of what the caller does with the raised error.
    """
    result = await db.execute(lockout.failed_attempt_statement(account.id))
    await db.refresh(account)
    await db.commit()

    if result.rowcount == 0:
        raise AccountLockedError()

    state = lockout.lock_state(account)
    if state.locked:
        logger.warning(
            "Account %s locked after %d failed attempts",
            account.id,
            state.failed_attempts,
        )
        raise AccountLockedError()

    logger.info(
        "Failed login for account %s (%d/%d)",
        account.id,
        state.failed_attempts,
        lockout.LOCKOUT_THRESHOLD,
    )
    raise InvalidCredentialsError()


async def change_password(
    db: AsyncSession,
    account: Account,
    current_password: str,
    new_password: str,
) -> None:
    """
    Change a password after proving knowledge of the current one.

    Raises:
        WrongCurrentPasswordError: If current_password doesn't match.
    """
    if not await run_in_threadpool(verify_password, current_password, account.password_hash):
        raise WrongCurrentPasswordError()

    await set_password(account, new_password)
    await db.flush()
    logger.info("Password changed for account %s", account.id)


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------

async def request_reset(
    db: AsyncSession,
    email: str,
    window: timedelta = DEFAULT_RESET_WINDOW,
) -> str:
    """
    Start a password reset for an email.

    Stores the digest and expiry of a new reset token on the account,
    replacing any pending one, and returns the cleartext. Delivering the
    cleartext is the caller's job.

    Raises:
        AccountNotFoundError: If no account has this email.
    """
    account = await get_by_email(db, email)
    if account is None:
        raise AccountNotFoundError(normalize_email(email))

    token = generate_reset_token(window)
    account.reset_token_hash = token.token_hash
    account.reset_token_expiry = token.expires_at
    await db.flush()

    logger.info("Password reset requested for account %s", account.id)
    return token.cleartext


async def consume_reset(
    db: AsyncSession,
    cleartext_token: str,
    new_password: str,
) -> Account:
    """
    Set a new password using a reset token.

    The account is located by the token digest AND an unexpired expiry in
    one query. The password write and the clearing of the reset fields are
    one conditional UPDATE on the digest, so two concurrent uses of the
    same token cannot both succeed.

    Raises:
        InvalidOrExpiredTokenError: Unknown, already used, or expired token.
    """
    token_hash = hash_reset_token(cleartext_token)
    now = datetime.now(timezone.utc)

    result = await db.execute(
        select(Account).where(
            Account.reset_token_hash == token_hash,
            Account.reset_token_expiry > now,
        )
    )
    account = result.scalar_one_or_none()
    if account is None:
        raise InvalidOrExpiredTokenError()

    new_hash = await run_in_threadpool(hash_password, new_password)
    result = await db.execute(
        update(Account)
        .where(Account.id == account.id, Account.reset_token_hash == token_hash)
        .values(password_hash=new_hash, reset_token_hash=None, reset_token_expiry=None)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise InvalidOrExpiredTokenError()
    await db.refresh(account)

    logger.info("Password reset completed for account %s", account.id)
    return account


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

async def update_details(
    db: AsyncSession,
    account: Account,
    name: str | None = None,
    email: str | None = None,
) -> Account:
    """
    Update display name and/or email. Only provided fields change.

    Raises:
        DuplicateEmailError: If the new email belongs to another account.
    """
    if email is not None:
        email = normalize_email(email)
        if email != account.email:
            existing = await get_by_email(db, email)
            if existing is not None:
                raise DuplicateEmailError(email)
            account.email = email

    if name is not None:
        account.name = name

    await _flush_new_email(db, account.email)
    return account


def account_status(account: Account) -> dict:
    return {
        "locked": account.locked,
        "failed_attempts": account.failed_attempts,
        "last_successful_login": account.last_successful_login,
    }


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------

async def admin_unlock(db: AsyncSession, account_id: uuid.UUID) -> Account:
    """
    Clear the lock and the failed-attempt counter.

    Raises:
        AccountNotFoundError: If the account doesn't exist.
    """
    account = await get_account(db, account_id)
    await db.execute(lockout.admin_unlock_statement(account.id))
    await db.refresh(account)

    logger.info("Account %s unlocked by administrator", account.id)
    return account


async def list_accounts(
    db: AsyncSession,
    role: Role | None = None,
    locked: bool | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 25,
) -> tuple[list[Account], int]:
    """
    List accounts for administrators, newest first.

    Args:
        role: Only accounts with this role.
        locked: Only locked (True) or unlocked (False) accounts.
        search: Case-insensitive substring of name or email.
        page: 1-based page number.
        limit: Page size.

    Returns:
        Tuple of (accounts on this page, total matching accounts).
    """
    filters = []
    if role is not None:
        filters.append(Account.role == role)
    if locked is not None:
        filters.append(Account.locked.is_(locked))
    if search:
        pattern = f"%{escape_like(search)}%"
        filters.append(
            or_(
                Account.name.ilike(pattern, escape="\\"),
                Account.email.ilike(pattern, escape="\\"),
            )
        )

    total = await db.scalar(select(func.count()).select_from(Account).where(*filters))

    result = await db.execute(
        select(Account)
        .where(*filters)
        .order_by(Account.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total or 0


async def admin_create_account(
    db: AsyncSession,
    name: str,
    email: str,
    password: str,
    role: Role = Role.STANDARD,
) -> Account:
    """
    Create an account on behalf of an administrator, with any role.

    Raises:
        DuplicateEmailError: If the email is already registered.
    """
    email = normalize_email(email)
    if await get_by_email(db, email) is not None:
        raise DuplicateEmailError(email)

    account = Account(
        name=name,
        email=email,
        role=role,
        locked=False,
        failed_attempts=0,
    )
    await set_password(account, password)
    db.add(account)
    await _flush_new_email(db, email)

    logger.info("Administrator created account %s with role %s", account.id, role.value)
    return account


async def admin_update_account(
    db: AsyncSession,
    account_id: uuid.UUID,
    name: str | None = None,
    email: str | None = None,
    role: Role | None = None,
    password: str | None = None,
) -> Account:
    """
    Edit an account as an administrator.

    This is the only path that changes a role. Lock state and the attempt
    counter are not editable here; use admin_unlock.

    Raises:
        AccountNotFoundError: If the account doesn't exist.
        DuplicateEmailError: If the new email belongs to another account.
    """
    account = await get_account(db, account_id)
    await update_details(db, account, name=name, email=email)

    if role is not None and role != account.role:
        logger.info(
            "Role of account %s changed from %s to %s",
            account.id,
            account.role.value,
            role.value,
        )
        account.role = role

    if password is not None:
        await set_password(account, password)

    await db.flush()
    return account


async def delete_account(
    db: AsyncSession,
    acting_account: Account,
    account_id: uuid.UUID,
) -> None:
    """
    Permanently remove an account.

    Raises:
        CannotDeleteSelfError: If the target is the acting account.
        AccountNotFoundError: If the account doesn't exist.
    """
    if account_id == acting_account.id:
        raise CannotDeleteSelfError()

    account = await get_account(db, account_id)
    await db.delete(account)
    await db.flush()
    logger.info("Account %s deleted by %s", account_id, acting_account.id)
