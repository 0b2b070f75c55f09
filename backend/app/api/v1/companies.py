from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_auth_context
from app.core.permissions import AuthContext
from app.database import get_db
from app.schemas.common import CamelModel
from app.services import organization_service

router = APIRouter(prefix="/companies", tags=["organizations"])


class CompanyCreate(CamelModel):
    name: str | None = None
    industry: str | None = None
    settings: dict | None = None


class CompanyUpdate(CamelModel):
    name: str | None = None
    industry: str | None = None
    settings: dict | None = None
    is_active: bool | None = None


class SiteCreate(CamelModel):
    name: str | None = None
    location: str | None = None


@router.get("")
async def list_companies(
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await organization_service.list_companies(db, ctx)


@router.post("", status_code=201)
async def create_company(
    body: CompanyCreate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await organization_service.create_company(db, ctx, body.model_dump())


@router.get("/{company_id}")
async def get_company(
    company_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await organization_service.get_company(db, ctx, company_id)


@router.put("/{company_id}")
async def update_company(
    company_id: uuid.UUID,
    body: CompanyUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await organization_service.update_company(
        db, ctx, company_id, body.model_dump(exclude_unset=True)
    )


@router.delete("/{company_id}", status_code=204)
async def delete_company(
    company_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    await organization_service.delete_company(db, ctx, company_id)


# ── Sites of a company ───────────────────────────────────────────────────────


@router.get("/{company_id}/sites")
async def list_company_sites(
    company_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await organization_service.list_sites(db, ctx, company_id)


@router.post("/{company_id}/sites", status_code=201)
async def create_site(
    company_id: uuid.UUID,
    body: SiteCreate,
    db: AsyncSession = Depends(get_db),
    ctx: AuthContext = Depends(get_auth_context),
):
    return await organization_service.create_site(db, ctx, company_id, body.model_dump())
