from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_auth_context
from app.core.permissions import AuthContext
from app.database import get_db
from app.schemas.common import CamelModel
from app.services import organization_service

router = APIRouter(tags=["organizations"])


class SiteUpdate(CamelModel):
    name: str | None = None
    location: str | None = None


class DepartmentBody(CamelModel):
    name: str | None = None


# ── Sites ────────────────────────────────────────────────────────────────────


@router.get("/sites")
async def list_sites(
    company_id: uuid.UUID | None = Query(None, alias="companyId"),
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await organization_service.list_sites(db, ctx, company_id)


@router.get("/sites/{site_id}")
async def get_site(
    site_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await organization_service.get_site(db, ctx, site_id)


@router.put("/sites/{site_id}")
async def update_site(
    site_id: uuid.UUID,
    body: SiteUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await organization_service.update_site(
        db, ctx, site_id, body.model_dump(exclude_unset=True)
    )


@router.delete("/sites/{site_id}", status_code=204)
async def delete_site(
    site_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    await organization_service.delete_site(db, ctx, site_id)


@router.get("/sites/{site_id}/departments")
async def list_site_departments(
    site_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await organization_service.list_departments(db, ctx, site_id)


@router.post("/sites/{site_id}/departments", status_code=201)
async def create_department(
    site_id: uuid.UUID,
    body: DepartmentBody,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await organization_service.create_department(db, ctx, site_id, body.model_dump())


# ── Departments ──────────────────────────────────────────────────────────────


@router.get("/departments")
async def list_departments(
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await organization_service.list_departments(db, ctx)


@router.get("/departments/{department_id}")
async def get_department(
    department_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await organization_service.get_department(db, ctx, department_id)


@router.put("/departments/{department_id}")
async def update_department(
    department_id: uuid.UUID,
    body: DepartmentBody,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await organization_service.update_department(
        db, ctx, department_id, body.model_dump(exclude_unset=True)
    )


@router.delete("/departments/{department_id}", status_code=204)
async def delete_department(
    department_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    await organization_service.delete_department(db, ctx, department_id)
