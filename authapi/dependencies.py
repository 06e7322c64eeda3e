"""
FastAPI dependencies for authentication and authorization.

Dependencies are reusable functions that FastAPI injects into route handlers.
They form a dependency chain that enforces both authentication and
role-based access control:

  get_current_account (configured strategy -> Account)
      └── require_roles(*roles) (Account -> Account)   [exact role match]
              └── require_admin                        [ADMINISTRATOR]

  current_account(strategy) builds a variant of get_current_account that
  forces one strategy for a single route, whatever the deployment default.

Every protected endpoint declares one of these as a parameter. If it fails
(no credential, expired token, locked account, wrong role), the request is
rejected before the route handler runs.
"""

from fastapi import Depends, Request, Security
from fastapi.security import HTTPBasicCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from authapi.authorization import ensure_authorized
from authapi.config import AuthStrategy, Settings
from authapi.database import get_db
from authapi.models.account import Account, Role
from authapi.security import TokenIssuer
from authapi.strategies import (
    Authenticator,
    basic_scheme,
    bearer_scheme,
    select_authenticator,
    token_cookie_scheme,
)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_issuer(request: Request) -> TokenIssuer:
    return request.app.state.token_issuer


async def credential_schemes(
    bearer: str | None = Security(bearer_scheme),
    cookie: str | None = Security(token_cookie_scheme),
    basic: HTTPBasicCredentials | None = Security(basic_scheme),
) -> None:
    """
    Declares every credential scheme the API accepts so the OpenAPI
    document (and Swagger UI's "Authorize" button) lists them. The
    authenticators read the request themselves.
    """


async def get_current_account(
    request: Request,
    db: AsyncSession = Depends(get_db),
    _schemes: None = Depends(credential_schemes),
) -> Account:
    """
    Resolve the request to an Account with the deployment's strategy.

    Raises:
        UnauthenticatedError (401): No usable credential.
        AccountLockedError (403): The account is locked.
    """
    authenticator: Authenticator = request.app.state.authenticator
    return await authenticator.authenticate(request, db)


def current_account(strategy: AuthStrategy):
    """
    Build a dependency that authenticates with a specific strategy.

    Usage:
        @router.get("/machine")
        async def route(account: Account = Depends(current_account(AuthStrategy.BASIC))):
            ...
    """

    async def dependency(
        request: Request,
        db: AsyncSession = Depends(get_db),
        _schemes: None = Depends(credential_schemes),
    ) -> Account:
        authenticator = select_authenticator(strategy, request.app.state.token_issuer)
        return await authenticator.authenticate(request, db)

    return dependency


def require_roles(*roles: Role):
    """
    Build a dependency that admits only accounts holding one of `roles`.

    Raises:
        ForbiddenError (403): The account's role is not in `roles`.
    """
    allowed = frozenset(roles)

    async def dependency(
        account: Account = Depends(get_current_account),
    ) -> Account:
        ensure_authorized(account, allowed)
        return account

    return dependency


# Administrators manage other accounts (unlock, list, edit, delete)
require_admin = require_roles(Role.ADMINISTRATOR)
