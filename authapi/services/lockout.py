"""
Account lockout policy - the failed-login state machine.

States:
    Unlocked(k)  for k in 0..4   (k = consecutive failed attempts)
    Locked

Transitions:
    failure:       Unlocked(k) -> Unlocked(k+1)   if k+1 < 5
                   Unlocked(4) -> Locked
    success:       Unlocked(k) -> Unlocked(0)     (+ last_successful_login = now)
    admin unlock:  any         -> Unlocked(0)

Locked is terminal except through an administrative unlock. A locked
account rejects every credential check, including a correct password.

Concurrency:
  The pure functions below define the machine, and the persisted
  transitions are built from them as single conditional UPDATE statements
  so the database applies read-modify-write atomically. failure_step()
  works on a plain counter and on the failed_attempts column alike, so the
  statement computes exactly what on_failure() computes. Two concurrent
  failures can never both read failed_attempts=4 and both decide "not yet
  locked", and the `WHERE locked = false` guard stops the counter from
  climbing past the threshold once the account is locked.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Update, case, update

from authapi.models.account import Account

LOCKOUT_THRESHOLD = 5


@dataclass(frozen=True)
class LockState:
    failed_attempts: int = 0
    locked: bool = False


def lock_state(account: Account) -> LockState:
    return LockState(failed_attempts=account.failed_attempts, locked=account.locked)


def failure_step(failed_attempts):
    """Counter after one more failure, and whether that reaches the threshold."""
    attempts = failed_attempts + 1
    return attempts, attempts >= LOCKOUT_THRESHOLD


def on_failure(state: LockState) -> LockState:
    """Apply one failed verification."""
    if state.locked:
        return state
    attempts, locks = failure_step(state.failed_attempts)
    return LockState(failed_attempts=attempts, locked=locks)


def on_success(state: LockState) -> LockState:
    """Apply one successful verification. A locked account stays locked."""
    if state.locked:
        return state
    return LockState()


def on_admin_unlock(state: LockState) -> LockState:
    return LockState()


# ---------------------------------------------------------------------------
# Persisted transitions
# ---------------------------------------------------------------------------

def failed_attempt_statement(account_id: uuid.UUID) -> Update:
    """
    UPDATE that applies on_failure() to the stored row.

    SET expressions see the row's pre-update values, so both columns are
    derived from the same counter read inside the database. Zero affected
    rows means the account was already locked.
    """
    attempts, locks = failure_step(Account.failed_attempts)
    return (
        update(Account)
        .where(Account.id == account_id, Account.locked.is_(False))
        .values(
            failed_attempts=attempts,
            locked=case((locks, True), else_=False),
        )
        .execution_options(synchronize_session=False)
    )


def successful_login_statement(account_id: uuid.UUID, now: datetime) -> Update:
    """
    UPDATE that applies on_success() and stamps the login time.

    Guarded on `locked = false`: if a concurrent failure locked the account
    after the password was checked, no row is updated and the login must
    be refused.
    """
    # Every Unlocked(k) clears to the same state
    cleared = on_success(LockState())
    return (
        update(Account)
        .where(Account.id == account_id, Account.locked.is_(False))
        .values(failed_attempts=cleared.failed_attempts, last_successful_login=now)
        .execution_options(synchronize_session=False)
    )


def admin_unlock_statement(account_id: uuid.UUID) -> Update:
    unlocked = on_admin_unlock(LockState(failed_attempts=LOCKOUT_THRESHOLD, locked=True))
    return (
        update(Account)
        .where(Account.id == account_id)
        .values(failed_attempts=unlocked.failed_attempts, locked=unlocked.locked)
        .execution_options(synchronize_session=False)
    )
