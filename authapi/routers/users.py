"""
Users router - administrator account management.

All endpoints require the ADMINISTRATOR role.

Endpoints:
  GET    /users               - List accounts (filters + pagination)
  POST   /users               - Create an account with any role
  GET    /users/{account_id}  - Get one account
  PUT    /users/{account_id}  - Edit name / email / role / password
  DELETE /users/{account_id}  - Delete an account (never your own)

Role elevation happens only here. The failed-attempt counter and lock flag
are not editable through these endpoints; use PUT /auth/unlock/{id}.
"""

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from authapi.database import get_db
from authapi.dependencies import require_admin
from authapi.models.account import Account, Role
from authapi.schemas.account import (
    AccountListResponse,
    AdminAccountResponse,
    AdminCreateAccountRequest,
    AdminUpdateAccountRequest,
)
from authapi.services import account_service

router = APIRouter()


@router.get(
    "",
    response_model=AccountListResponse,
    summary="[Admin] List accounts",
)
async def list_accounts(
    role: Role | None = Query(None, description="Filter by role"),
    locked: bool | None = Query(None, description="Filter by lock state"),
    search: str | None = Query(None, description="Substring of name or email"),
    page: int = Query(1, ge=1),
    limit: int = Query(25, ge=1, le=100),
    admin: Account = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """List accounts, newest first."""
    accounts, total = await account_service.list_accounts(
        db,
        role=role,
        locked=locked,
        search=search,
        page=page,
        limit=limit,
    )
    return AccountListResponse(
        count=len(accounts),
        total=total,
        page=page,
        limit=limit,
        data=[AdminAccountResponse.model_validate(a) for a in accounts],
    )


@router.post(
    "",
    response_model=AdminAccountResponse,
    status_code=status.HTTP_201_CREATED,
    summary="[Admin] Create an account",
)
async def create_account(
    body: AdminCreateAccountRequest,
    admin: Account = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await account_service.admin_create_account(
        db,
        name=body.name,
        email=body.email,
        password=body.password,
        role=body.role,
    )


@router.get(
    "/{account_id}",
    response_model=AdminAccountResponse,
    summary="[Admin] Get an account",
)
async def get_account(
    account_id: uuid.UUID,
    admin: Account = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await account_service.get_account(db, account_id)


@router.put(
    "/{account_id}",
    response_model=AdminAccountResponse,
    summary="[Admin] Update an account",
)
async def update_account(
    account_id: uuid.UUID,
    body: AdminUpdateAccountRequest,
    admin: Account = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Partial update; only the fields sent are changed."""
    return await account_service.admin_update_account(
        db,
        account_id,
        name=body.name,
        email=body.email,
        role=body.role,
        password=body.password,
    )


@router.delete(
    "/{account_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="[Admin] Delete an account",
)
async def delete_account(
    account_id: uuid.UUID,
    admin: Account = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Permanently delete an account. Administrators cannot delete themselves."""
    await account_service.delete_account(db, admin, account_id)
