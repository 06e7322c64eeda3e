"""
Role-based authorization gate.

Runs after identity is established. Roles are compared by exact match
against the closed Role set - ADMINISTRATOR does not implicitly satisfy a
STANDARD requirement; routes that admit both list both.

The gate fails closed: no account, or a role outside the required set,
is a denial.
"""

from collections.abc import Iterable

from authapi.exceptions import ForbiddenError
from authapi.models.account import Account, Role


def authorize(account: Account | None, required_roles: Iterable[Role]) -> bool:
    if account is None:
        return False
    return account.role in set(required_roles)


def ensure_authorized(account: Account | None, required_roles: Iterable[Role]) -> None:
    """
    Raises:
        ForbiddenError: If authorize() denies the account.
    """
    if not authorize(account, required_roles):
        role = account.role.value if account is not None else "anonymous"
        raise ForbiddenError(f"Role {role} is not allowed to access this resource")
