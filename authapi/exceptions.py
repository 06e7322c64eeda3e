"""
Custom exception classes and FastAPI exception handlers.

Why custom exceptions?
  The service layer raises domain-specific errors (like AccountLockedError)
  without importing HTTP concepts. The handler layer then translates them
  into HTTP responses with a consistent shape:

      {"detail": "human readable message", "error_type": "machine_slug"}

  This separation means:
    - Service code is testable without HTTP
    - Error responses are consistent across all endpoints
    - Adding new error types means adding one class

Exception hierarchy:
    AuthAPIError (base)
    ├── DuplicateEmailError         - registration with an email on file      (400)
    ├── InvalidCredentialsError     - wrong email OR wrong password            (401)
    ├── AccountLockedError          - account is locked, password irrelevant   (403)
    ├── UnauthenticatedError        - missing/invalid/expired credential       (401)
    ├── ForbiddenError              - authenticated but role insufficient      (403)
    ├── InvalidOrExpiredTokenError  - reset token absent/mismatched/expired    (400)
    ├── WrongCurrentPasswordError   - change-password with wrong current value (401)
    ├── AccountNotFoundError        - target account id does not exist        (404)
    └── CannotDeleteSelfError       - admin tried to delete their own account  (400)

HTTPExceptions raised by FastAPI itself (unknown route, undecodable
credential header) get the same response shape. Anything else is logged
with its traceback and returned as a generic 500 so internal detail never
reaches the caller.
"""

import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("authapi.errors")

HTTP_ERROR_TYPES = {
    401: "unauthenticated",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
}


# ---------------------------------------------------------------------------
# Base exception
# ---------------------------------------------------------------------------

class AuthAPIError(Exception):
    """Base exception for all Auth API domain errors."""

    status_code: int = 400
    error_type: str = "error"

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)


# ---------------------------------------------------------------------------
# Domain exceptions
# ---------------------------------------------------------------------------

class DuplicateEmailError(AuthAPIError):
    """Raised when attempting to register with an email that's already in use."""

    status_code = 400
    error_type = "duplicate_email"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Email {email} is already registered")


class InvalidCredentialsError(AuthAPIError):
    """
    Raised when login credentials are incorrect.

    The message is identical for "no such email" and "wrong password" so
    the response cannot be used to enumerate accounts.
    """

    status_code = 401
    error_type = "invalid_credentials"

    def __init__(self):
        super().__init__("Invalid email or password")


class AccountLockedError(AuthAPIError):
    """Raised when the account is locked after too many failed attempts."""

    status_code = 403
    error_type = "account_locked"

    def __init__(self):
        super().__init__("Account locked. Please contact an administrator")


class UnauthenticatedError(AuthAPIError):
    """Raised when a request carries no usable credential."""

    status_code = 401
    error_type = "unauthenticated"

    def __init__(self, detail: str = "Could not validate credentials", scheme: str = "Bearer"):
        # Advertised in the WWW-Authenticate response header
        self.scheme = scheme
        super().__init__(detail)


class ForbiddenError(AuthAPIError):
    """Raised when the authenticated account's role is not allowed."""

    status_code = 403
    error_type = "forbidden"

    def __init__(self, detail: str = "You do not have access to this resource"):
        super().__init__(detail)


class InvalidOrExpiredTokenError(AuthAPIError):
    """Raised when a password reset token is unknown, already used, or expired."""

    status_code = 400
    error_type = "invalid_or_expired_token"

    def __init__(self):
        super().__init__("Invalid or expired reset token")


class WrongCurrentPasswordError(AuthAPIError):
    """Raised when change-password is called with the wrong current password."""

    status_code = 401
    error_type = "wrong_current_password"

    def __init__(self):
        super().__init__("Current password is incorrect")


class AccountNotFoundError(AuthAPIError):
    """Raised when a requested account does not exist."""

    status_code = 404
    error_type = "account_not_found"

    def __init__(self, account_id: uuid.UUID | str):
        self.account_id = account_id
        super().__init__(f"Account {account_id} not found")


class CannotDeleteSelfError(AuthAPIError):
    """Raised when an administrator tries to delete the account they are using."""

    status_code = 400
    error_type = "cannot_delete_self"

    def __init__(self):
        super().__init__("You cannot delete your own account")


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

def register_exception_handlers(app: FastAPI) -> None:
    """
    Register custom exception handlers with the FastAPI application.

    Domain errors carry their own status code and error_type, so a single
    handler on the base class covers the whole hierarchy.

    This is called once by the app factory in main.py.
    """

    @app.exception_handler(AuthAPIError)
    async def auth_api_error_handler(
        request: Request, exc: AuthAPIError
    ) -> JSONResponse:
        headers = None
        if exc.status_code == 401:
            headers = {"WWW-Authenticate": getattr(exc, "scheme", "Bearer")}
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "error_type": exc.error_type},
            headers=headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        # Raised by FastAPI itself: unknown routes, wrong methods, and the
        # security classes when a credential header cannot be decoded
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": exc.detail,
                "error_type": HTTP_ERROR_TYPES.get(exc.status_code, "http_error"),
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=422,
            content={
                "detail": "Request validation failed",
                "error_type": "validation_failed",
                "errors": errors,
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error", "error_type": "internal_error"},
        )
