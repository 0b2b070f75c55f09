"""Companies, sites and departments.

Visibility follows the caller's scope column from the role table: a
site_admin sees one site and its departments, a department_admin one
department, and so on. Writes additionally need the matching permission.
"""
from __future__ import annotations

import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict, Forbidden, NotFound, ValidationError
from app.core.permissions import AuthContext
from app.models.organization import Company, Department, Site
from app.models.user import User
from app.services.permission_service import PermissionService

logger = logging.getLogger(__name__)


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def company_to_dict(c: Company, **extra) -> dict:
    return {
        "id": str(c.id),
        "name": c.name,
        "industry": c.industry,
        "isActive": c.is_active,
        "settings": c.settings or {},
        "createdAt": _iso(c.created_at),
        "updatedAt": _iso(c.updated_at),
        **extra,
    }


def site_to_dict(s: Site, **extra) -> dict:
    return {
        "id": str(s.id),
        "companyId": str(s.company_id),
        "companyName": s.company.name if s.company else None,
        "name": s.name,
        "location": s.location,
        "createdAt": _iso(s.created_at),
        "updatedAt": _iso(s.updated_at),
        **extra,
    }


def department_to_dict(d: Department, **extra) -> dict:
    return {
        "id": str(d.id),
        "siteId": str(d.site_id),
        "siteName": d.site.name if d.site else None,
        "companyId": str(d.site.company_id) if d.site else None,
        "name": d.name,
        "createdAt": _iso(d.created_at),
        "updatedAt": _iso(d.updated_at),
        **extra,
    }


def _covers_site(ctx: AuthContext, site: Site) -> bool:
    scope = ctx.policy.scope
    if scope is None:
        return True
    if scope == "company_id":
        return site.company_id == ctx.company_id
    if scope in ("site_id", "department_id"):
        return site.id == ctx.site_id
    return False


def _covers_department(ctx: AuthContext, dept: Department) -> bool:
    scope = ctx.policy.scope
    if scope == "department_id":
        return dept.id == ctx.department_id
    return dept.site is not None and _covers_site(ctx, dept.site)


async def _user_count(db: AsyncSession, *filters) -> int:
    return (
        await db.execute(select(func.count()).select_from(User).where(*filters))
    ).scalar() or 0


# ── Companies ─────────────────────────────────────────────────────────


async def _load_company(db: AsyncSession, ctx: AuthContext, company_id: uuid.UUID) -> Company:
    company = await db.get(Company, company_id)
    if company is None:
        raise NotFound("Company not found")
    PermissionService.require_company(ctx, company.id)
    return company


async def list_companies(db: AsyncSession, ctx: AuthContext) -> list[dict]:
    stmt = select(Company).order_by(Company.name)
    if not ctx.is_super_admin:
        if ctx.company_id is None:
            return []
        stmt = stmt.where(Company.id == ctx.company_id)
    companies = (await db.execute(stmt)).scalars().all()
    return [company_to_dict(c) for c in companies]


async def get_company(db: AsyncSession, ctx: AuthContext, company_id: uuid.UUID) -> dict:
    company = await _load_company(db, ctx, company_id)
    sites = (
        await db.execute(select(func.count()).select_from(Site).where(Site.company_id == company.id))
    ).scalar() or 0
    return company_to_dict(
        company,
        stats={"sites": sites, "users": await _user_count(db, User.company_id == company.id)},
    )


async def create_company(db: AsyncSession, ctx: AuthContext, data: dict) -> dict:
    PermissionService.require_permission(ctx, "companies.manage")
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Company name is required")

    company = Company(
        name=name,
        industry=data.get("industry"),
        settings=data.get("settings") or {},
    )
    db.add(company)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("Company name already exists") from None
    await db.refresh(company)
    logger.info("Company %s created", company.id)
    return company_to_dict(company)


async def update_company(
    db: AsyncSession, ctx: AuthContext, company_id: uuid.UUID, changes: dict
) -> dict:
    PermissionService.require_permission(ctx, "companies.edit")
    company = await _load_company(db, ctx, company_id)

    if "name" in changes:
        name = (changes["name"] or "").strip()
        if not name:
            raise ValidationError("Company name cannot be empty")
        company.name = name
    if "industry" in changes:
        company.industry = changes["industry"]
    if "settings" in changes:
        company.settings = changes["settings"] or {}
    if "is_active" in changes:
        if not ctx.is_super_admin:
            raise Forbidden("Only super admins can change company status")
        company.is_active = bool(changes["is_active"])

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("Company name already exists") from None
    await db.refresh(company)
    return company_to_dict(company)


async def delete_company(db: AsyncSession, ctx: AuthContext, company_id: uuid.UUID) -> None:
    PermissionService.require_permission(ctx, "companies.manage")
    company = await db.get(Company, company_id)
    if company is None:
        raise NotFound("Company not found")
    await db.delete(company)
    await db.commit()
    logger.info("Company %s deleted", company_id)


# ── Sites ─────────────────────────────────────────────────────────────


async def _load_site(db: AsyncSession, ctx: AuthContext, site_id: uuid.UUID) -> Site:
    site = await db.get(Site, site_id)
    if site is None:
        raise NotFound("Site not found")
    if not _covers_site(ctx, site):
        raise Forbidden("Access denied")
    return site


async def list_sites(
    db: AsyncSession, ctx: AuthContext, company_id: uuid.UUID | None = None
) -> list[dict]:
    scope = ctx.policy.scope
    stmt = select(Site).order_by(Site.name)
    if scope is None:
        if company_id:
            stmt = stmt.where(Site.company_id == company_id)
    elif scope == "company_id":
        if company_id and company_id != ctx.company_id:
            raise Forbidden("Access denied")
        stmt = stmt.where(Site.company_id == ctx.company_id)
    elif scope in ("site_id", "department_id"):
        stmt = stmt.where(Site.id == ctx.site_id)
    else:
        raise Forbidden("Access denied")

    sites = (await db.execute(stmt)).scalars().all()
    return [site_to_dict(s) for s in sites]


async def get_site(db: AsyncSession, ctx: AuthContext, site_id: uuid.UUID) -> dict:
    site = await _load_site(db, ctx, site_id)
    departments = (
        await db.execute(select(Department).where(Department.site_id == site.id).order_by(Department.name))
    ).scalars().all()
    return site_to_dict(
        site,
        departments=[department_to_dict(d) for d in departments],
        stats={"users": await _user_count(db, User.site_id == site.id)},
    )


async def create_site(
    db: AsyncSession, ctx: AuthContext, company_id: uuid.UUID | None, data: dict
) -> dict:
    PermissionService.require_permission(ctx, "sites.manage")
    if not ctx.is_super_admin:
        company_id = ctx.company_id
    if company_id is None:
        raise ValidationError("Company ID is required")
    if await db.get(Company, company_id) is None:
        raise NotFound("Company not found")

    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Site name is required")

    site = Site(company_id=company_id, name=name, location=data.get("location"))
    db.add(site)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("A site with this name already exists") from None
    await db.refresh(site)
    return site_to_dict(site)


async def update_site(db: AsyncSession, ctx: AuthContext, site_id: uuid.UUID, changes: dict) -> dict:
    PermissionService.require_permission(ctx, "sites.edit")
    site = await _load_site(db, ctx, site_id)

    if "name" in changes:
        name = (changes["name"] or "").strip()
        if not name:
            raise ValidationError("Site name cannot be empty")
        site.name = name
    if "location" in changes:
        site.location = changes["location"]

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("A site with this name already exists") from None
    await db.refresh(site)
    return site_to_dict(site)


async def delete_site(db: AsyncSession, ctx: AuthContext, site_id: uuid.UUID) -> None:
    PermissionService.require_permission(ctx, "sites.manage")
    site = await _load_site(db, ctx, site_id)
    await db.delete(site)
    await db.commit()


# ── Departments ───────────────────────────────────────────────────────


async def _load_department(db: AsyncSession, ctx: AuthContext, department_id: uuid.UUID) -> Department:
    dept = await db.get(Department, department_id)
    if dept is None:
        raise NotFound("Department not found")
    if not _covers_department(ctx, dept):
        raise Forbidden("Access denied")
    return dept


async def list_departments(
    db: AsyncSession, ctx: AuthContext, site_id: uuid.UUID | None = None
) -> list[dict]:
    scope = ctx.policy.scope
    stmt = select(Department).join(Site, Site.id == Department.site_id).order_by(Department.name)
    if site_id:
        await _load_site(db, ctx, site_id)
        stmt = stmt.where(Department.site_id == site_id)

    if scope == "company_id":
        stmt = stmt.where(Site.company_id == ctx.company_id)
    elif scope == "site_id":
        stmt = stmt.where(Department.site_id == ctx.site_id)
    elif scope == "department_id":
        stmt = stmt.where(Department.id == ctx.department_id)
    elif scope is not None:
        raise Forbidden("Access denied")

    departments = (await db.execute(stmt)).scalars().all()
    return [department_to_dict(d) for d in departments]


async def get_department(db: AsyncSession, ctx: AuthContext, department_id: uuid.UUID) -> dict:
    dept = await _load_department(db, ctx, department_id)
    return department_to_dict(
        dept, stats={"users": await _user_count(db, User.department_id == dept.id)}
    )


async def create_department(db: AsyncSession, ctx: AuthContext, site_id: uuid.UUID, data: dict) -> dict:
    PermissionService.require_permission(ctx, "departments.manage")
    site = await _load_site(db, ctx, site_id)

    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Department name is required")

    dept = Department(site_id=site.id, name=name)
    db.add(dept)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("A department with this name already exists") from None
    await db.refresh(dept)
    return department_to_dict(dept)


async def update_department(
    db: AsyncSession, ctx: AuthContext, department_id: uuid.UUID, changes: dict
) -> dict:
    PermissionService.require_permission(ctx, "departments.manage")
    dept = await _load_department(db, ctx, department_id)

    if "name" in changes:
        name = (changes["name"] or "").strip()
        if not name:
            raise ValidationError("Department name cannot be empty")
        dept.name = name

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("A department with this name already exists") from None
    await db.refresh(dept)
    return department_to_dict(dept)


async def delete_department(db: AsyncSession, ctx: AuthContext, department_id: uuid.UUID) -> None:
    PermissionService.require_permission(ctx, "departments.manage")
    dept = await _load_department(db, ctx, department_id)
    await db.delete(dept)
    await db.commit()
