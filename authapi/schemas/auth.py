"""
Pydantic schemas for authentication endpoints.

These schemas define the request/response contracts for the /auth API.
Pydantic validates incoming data automatically - if a required field is
missing or the wrong type, FastAPI returns a 422 validation_failed error
before our code even runs.

Password hashes and reset-token digests never appear in any response
schema.
"""

import uuid
from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, EmailStr, Field, StringConstraints, model_validator

from authapi.models.account import Role

# Stripped before the length check, so a blank name is rejected
DisplayName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=50)]


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""
    name: DisplayName
    email: EmailStr
    password: str = Field(min_length=6)
    password_confirm: str

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.password_confirm:
            raise ValueError("Passwords do not match")
        return self


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""
    email: EmailStr
    password: str = Field(min_length=1)


class AccountResponse(BaseModel):
    """Public representation of an Account (never includes the password hash)."""
    id: uuid.UUID
    name: str
    email: EmailStr
    role: Role
    last_successful_login: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AuthResponse(BaseModel):
    """Response body for register/login - account info + JWT."""
    account: AccountResponse
    token: str
    token_type: str = "bearer"


class ResetPasswordResponse(BaseModel):
    """
    Response body for a completed password reset. token is None when the
    account is locked: the password is changed but no session starts until
    an administrator unlocks it.
    """
    account: AccountResponse
    token: str | None = None
    token_type: str = "bearer"


class TokenResponse(BaseModel):
    """Response body for password change - a fresh JWT."""
    token: str
    token_type: str = "bearer"


class UpdateDetailsRequest(BaseModel):
    """Request body for PUT /auth/details. Omitted fields are left alone."""
    name: DisplayName | None = None
    email: EmailStr | None = None


class ChangePasswordRequest(BaseModel):
    """Request body for PUT /auth/password."""
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=6)


class ForgotPasswordRequest(BaseModel):
    """Request body for POST /auth/forgot-password."""
    email: EmailStr


class ForgotPasswordResponse(BaseModel):
    """
    Identical for known and unknown emails. reset_token is only filled in
    when EXPOSE_RESET_TOKEN is enabled (development).
    """
    message: str = "If an account exists for this email, a reset link has been sent"
    reset_token: str | None = None


class ResetPasswordRequest(BaseModel):
    """Request body for PUT /auth/reset-password/{reset_token}."""
    password: str = Field(min_length=6)


class AccountStatusResponse(BaseModel):
    locked: bool
    failed_attempts: int
    last_successful_login: datetime | None = None


class MessageResponse(BaseModel):
    message: str
