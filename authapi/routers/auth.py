"""
Authentication router - registration, login, logout, passwords, lockout.

Endpoints:
  POST /auth/register                      - Create an account, get a token
  POST /auth/login                         - Authenticate, get a token
  POST /auth/logout  (also GET)            - Clear the token cookie and session
  GET  /auth/me                            - Current account
  PUT  /auth/details                       - Update name / email
  PUT  /auth/password                      - Change password, get a new token
  POST /auth/forgot-password               - Start a password reset
  PUT  /auth/reset-password/{reset_token}  - Finish a password reset
  GET  /auth/status                        - Lock state of the current account
  PUT  /auth/unlock/{account_id}           - [Admin] Unlock an account

Tokens are returned in the response body and set as an httpOnly cookie
named "token" (secure in production, max-age equal to the token lifetime).
When sessions are in use, login/register also stamp the session.

Security audit notes:
  - Plaintext passwords exist only in memory during request processing;
    they are hashed before any database operation and never logged.
  - forgot-password answers identically whether or not the email exists.
  - Reset tokens are never logged; only their SHA-256 digest is stored.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from authapi.config import Settings
from authapi.database import get_db
from authapi.dependencies import (
    get_current_account,
    get_settings,
    get_token_issuer,
    require_admin,
)
from authapi.models.account import Account
from authapi.schemas.auth import (
    AccountResponse,
    AccountStatusResponse,
    AuthResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    ResetPasswordRequest,
    ResetPasswordResponse,
    TokenResponse,
    UpdateDetailsRequest,
)
from authapi.security import TokenIssuer
from authapi.services import account_service, auth_service
from authapi.strategies import TOKEN_COOKIE_NAME, end_session, start_session

logger = logging.getLogger("authapi.routers.auth")

router = APIRouter()


def set_token_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        key=TOKEN_COOKIE_NAME,
        value=token,
        max_age=int(settings.access_token_lifetime.total_seconds()),
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


def _logged_in(
    request: Request,
    response: Response,
    settings: Settings,
    account: Account,
    token: str,
) -> AuthResponse:
    set_token_cookie(response, token, settings)
    if settings.sessions_enabled:
        start_session(request, account)
    return AuthResponse(account=AccountResponse.model_validate(account), token=token)


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new account",
)
async def register(
    body: RegisterRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    issuer: TokenIssuer = Depends(get_token_issuer),
):
    """
    Create a STANDARD account and log it in.

    - **name**: 1-50 characters
    - **email**: Valid email, not already registered (case-insensitive)
    - **password** / **password_confirm**: Minimum 6 characters, must match

    Any role supplied by the client is ignored; administrators are
    provisioned through /users or the operator script.
    """
    account, token = await auth_service.register(
        db,
        issuer,
        name=body.name,
        email=body.email,
        password=body.password,
    )
    return _logged_in(request, response, settings, account, token)


@router.post(
    "/login",
    response_model=AuthResponse,
    summary="Authenticate and get a token",
)
async def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    issuer: TokenIssuer = Depends(get_token_issuer),
):
    """
    Authenticate with email and password.

    Returns a JWT bearer token that must be included in the Authorization
    header (or sent back as the "token" cookie) on later requests:

        Authorization: Bearer <token>

    Five consecutive failures lock the account until an administrator
    unlocks it.
    """
    account, token = await auth_service.login(
        db,
        issuer,
        email=body.email,
        password=body.password,
    )
    return _logged_in(request, response, settings, account, token)


@router.api_route(
    "/logout",
    methods=["GET", "POST"],
    response_model=MessageResponse,
    summary="Log out",
)
async def logout(request: Request, response: Response):
    """
    Clear the token cookie and the server session.

    JWTs are stateless, so a copy of the token held elsewhere stays valid
    until it expires.
    """
    response.delete_cookie(TOKEN_COOKIE_NAME)
    end_session(request)
    return MessageResponse(message="Logged out")


@router.get(
    "/me",
    response_model=AccountResponse,
    summary="Get the current account",
)
async def get_me(account: Account = Depends(get_current_account)):
    return account


@router.put(
    "/details",
    response_model=AccountResponse,
    summary="Update name or email",
)
async def update_details(
    body: UpdateDetailsRequest,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    """Update the current account's name and/or email. Omitted fields are unchanged."""
    return await account_service.update_details(
        db,
        account,
        name=body.name,
        email=body.email,
    )


@router.put(
    "/password",
    response_model=TokenResponse,
    summary="Change password",
)
async def change_password(
    body: ChangePasswordRequest,
    response: Response,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    issuer: TokenIssuer = Depends(get_token_issuer),
):
    """Change the password after confirming the current one. Returns a fresh token."""
    token = await auth_service.change_password(
        db,
        issuer,
        account,
        current_password=body.current_password,
        new_password=body.new_password,
    )
    set_token_cookie(response, token, settings)
    return TokenResponse(token=token)


@router.post(
    "/forgot-password",
    response_model=ForgotPasswordResponse,
    summary="Request a password reset",
)
async def forgot_password(
    body: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Start a password reset.

    The response is the same whether or not the email is registered, so
    this endpoint cannot be used to discover accounts. The reset token is
    valid for RESET_TOKEN_EXPIRE_MINUTES and can be used once.
    """
    reset_token = await auth_service.request_password_reset(
        db,
        email=body.email,
        window=settings.reset_token_window,
    )
    if settings.EXPOSE_RESET_TOKEN and reset_token is not None:
        return ForgotPasswordResponse(reset_token=reset_token)
    return ForgotPasswordResponse()


@router.put(
    "/reset-password/{reset_token}",
    response_model=ResetPasswordResponse,
    summary="Reset password with a reset token",
)
async def reset_password(
    reset_token: str,
    body: ResetPasswordRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
    issuer: TokenIssuer = Depends(get_token_issuer),
):
    """
    Set a new password using a reset token and log the account in.

    A locked account stays locked: its password changes, but the response
    carries no token and no cookie or session is set.
    """
    account, token = await auth_service.reset_password(
        db,
        issuer,
        reset_token=reset_token,
        new_password=body.password,
    )
    if token is None:
        return ResetPasswordResponse(account=AccountResponse.model_validate(account))
    logged_in = _logged_in(request, response, settings, account, token)
    return ResetPasswordResponse(account=logged_in.account, token=logged_in.token)


@router.get(
    "/status",
    response_model=AccountStatusResponse,
    summary="Lock state of the current account",
)
async def get_status(account: Account = Depends(get_current_account)):
    return account_service.account_status(account)


@router.put(
    "/unlock/{account_id}",
    response_model=MessageResponse,
    summary="[Admin] Unlock an account",
)
async def unlock_account(
    account_id: uuid.UUID,
    admin: Account = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Clear the lock and failed-attempt counter of any account."""
    account = await auth_service.admin_unlock(db, account_id)
    return MessageResponse(message=f"Account {account.email} unlocked")
