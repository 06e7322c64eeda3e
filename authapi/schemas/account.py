"""
Pydantic schemas for administrator account management (/users).

Administrators see lock state and attempt counters that the public
AccountResponse omits. The failed-attempt counter is read-only here:
it changes only through login attempts and the unlock endpoint.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from authapi.models.account import Role
from authapi.schemas.auth import DisplayName


class AdminAccountResponse(BaseModel):
    id: uuid.UUID
    name: str
    email: EmailStr
    role: Role
    locked: bool
    failed_attempts: int
    last_successful_login: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AccountListResponse(BaseModel):
    """Paginated account listing."""
    count: int
    total: int
    page: int
    limit: int
    data: list[AdminAccountResponse]


class AdminCreateAccountRequest(BaseModel):
    name: DisplayName
    email: EmailStr
    password: str = Field(min_length=6)
    role: Role = Role.STANDARD


class AdminUpdateAccountRequest(BaseModel):
    """Partial update. Omitted fields are left alone."""
    name: DisplayName | None = None
    email: EmailStr | None = None
    role: Role | None = None
    password: str | None = Field(default=None, min_length=6)
