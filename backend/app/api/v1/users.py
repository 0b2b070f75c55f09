from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from pydantic import EmailStr
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_auth_context
from app.core.permissions import AuthContext
from app.database import get_db
from app.schemas.common import CamelModel
from app.services import user_service

router = APIRouter(prefix="/users", tags=["users"])


class UserInvite(CamelModel):
    email: EmailStr
    first_name: str = ""
    last_name: str = ""
    role: str = "user"
    password: str | None = None
    company_id: uuid.UUID | None = None
    site_id: uuid.UUID | None = None
    department_id: uuid.UUID | None = None


class UserUpdate(CamelModel):
    first_name: str | None = None
    last_name: str | None = None
    role: str | None = None
    is_active: bool | None = None
    site_id: uuid.UUID | None = None
    department_id: uuid.UUID | None = None


class BulkUsers(CamelModel):
    users: list[UserInvite]


@router.get("")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: str = "",
    role: str | None = None,
    company_id: uuid.UUID | None = Query(None, alias="companyId"),
    site_id: uuid.UUID | None = Query(None, alias="siteId"),
    department_id: uuid.UUID | None = Query(None, alias="departmentId"),
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await user_service.list_users(
        db,
        ctx,
        page=page,
        limit=limit,
        search=search,
        role=role,
        company_id=company_id,
        site_id=site_id,
        department_id=department_id,
    )


@router.get("/{user_id}")
async def get_user(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await user_service.get_user(db, ctx, user_id)


@router.post("", status_code=201)
async def invite_user(
    body: UserInvite,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await user_service.invite_user(db, ctx, body.model_dump())


@router.post("/bulk", status_code=201)
async def bulk_create_users(
    body: BulkUsers,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await user_service.bulk_create_users(db, ctx, [u.model_dump() for u in body.users])


@router.put("/{user_id}")
async def update_user(
    user_id: uuid.UUID,
    body: UserUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await user_service.update_user(db, ctx, user_id, body.model_dump(exclude_unset=True))


@router.delete("/{user_id}", status_code=204)
async def deactivate_user(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    await user_service.deactivate_user(db, ctx, user_id)
