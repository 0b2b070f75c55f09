"""User administration within the caller's scope.

Every role may only hand out roles from its delegation ceiling
(``RolePolicy.assignable``), and new users are pinned to the parts of the
organization tree the inviting admin is pinned to.
"""
from __future__ import annotations

import logging
import math
import uuid

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Conflict, Forbidden, NotFound, ValidationError
from app.core.permissions import AuthContext, Role
from app.core.security import hash_password
from app.models.organization import Company, Department, Site
from app.models.user import User
from app.services.permission_service import PermissionService

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
MAX_BULK_USERS = 500


def user_to_dict(u: User) -> dict:
    return {
        "id": str(u.id),
        "email": u.email,
        "firstName": u.first_name,
        "lastName": u.last_name,
        "displayName": u.display_name,
        "role": u.role,
        "companyId": str(u.company_id) if u.company_id else None,
        "siteId": str(u.site_id) if u.site_id else None,
        "departmentId": str(u.department_id) if u.department_id else None,
        "isActive": u.is_active,
        "lastLoginAt": u.last_login_at.isoformat() if u.last_login_at else None,
        "createdAt": u.created_at.isoformat() if u.created_at else None,
    }


def _scope_filter(ctx: AuthContext):
    scope = ctx.policy.scope
    if scope is None:
        return None
    if scope == "id":
        raise Forbidden("Access denied")
    return getattr(User, scope) == getattr(ctx, scope)


async def _email_taken(db: AsyncSession, email: str, exclude: uuid.UUID | None = None) -> bool:
    stmt = select(User.id).where(func.lower(User.email) == email.lower())
    if exclude:
        stmt = stmt.where(User.id != exclude)
    return (await db.execute(stmt)).first() is not None


async def _load_user(db: AsyncSession, ctx: AuthContext, user_id: uuid.UUID) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    if not ctx.covers_member(user.company_id, user.site_id, user.department_id):
        raise Forbidden("Access denied")
    return user


# ── Queries ───────────────────────────────────────────────────────────


async def list_users(
    db: AsyncSession,
    ctx: AuthContext,
    *,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    search: str = "",
    role: str | None = None,
    company_id: uuid.UUID | None = None,
    site_id: uuid.UUID | None = None,
    department_id: uuid.UUID | None = None,
) -> dict:
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)

    filters = []
    scoped = _scope_filter(ctx)
    if scoped is not None:
        filters.append(scoped)
    # Narrowing filters; the scope filter above still bounds them
    if company_id:
        filters.append(User.company_id == company_id)
    if site_id:
        filters.append(User.site_id == site_id)
    if department_id:
        filters.append(User.department_id == department_id)
    if search:
        pattern = f"%{search}%"
        filters.append(or_(
            User.email.ilike(pattern),
            User.first_name.ilike(pattern),
            User.last_name.ilike(pattern),
        ))
    if role:
        filters.append(User.role == role)

    total = (await db.execute(select(func.count()).select_from(User).where(*filters))).scalar() or 0
    users = (
        await db.execute(
            select(User)
            .where(*filters)
            .order_by(User.created_at.desc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
    ).scalars().all()

    return {
        "data": [user_to_dict(u) for u in users],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit) if total else 0,
        },
    }


async def get_user(db: AsyncSession, ctx: AuthContext, user_id: uuid.UUID) -> dict:
    return user_to_dict(await _load_user(db, ctx, user_id))


# ── Invite ────────────────────────────────────────────────────────────


def _require_assignable(ctx: AuthContext, role: str) -> None:
    if not ctx.can_assign(role):
        raise Forbidden("Cannot assign this role")


def _pinned_assignment(
    ctx: AuthContext,
    company_id: uuid.UUID | None,
    site_id: uuid.UUID | None,
    department_id: uuid.UUID | None,
) -> tuple[uuid.UUID | None, uuid.UUID | None, uuid.UUID | None]:
    """Override the requested assignment with whatever the caller is pinned to."""
    if ctx.role is Role.SUPER_ADMIN:
        return company_id, site_id, department_id
    if ctx.role is Role.COMPANY_ADMIN:
        return ctx.company_id, site_id, department_id
    if ctx.role is Role.SITE_ADMIN:
        return ctx.company_id, ctx.site_id, department_id
    return ctx.company_id, ctx.site_id, ctx.department_id


async def _validate_chain(
    db: AsyncSession,
    company_id: uuid.UUID | None,
    site_id: uuid.UUID | None,
    department_id: uuid.UUID | None,
) -> None:
    if company_id and await db.get(Company, company_id) is None:
        raise NotFound("Company not found")
    if site_id:
        site = await db.get(Site, site_id)
        if site is None or (company_id and site.company_id != company_id):
            raise NotFound("Site not found or does not belong to company")
    if department_id:
        dept = await db.get(Department, department_id)
        if dept is None or (site_id and dept.site_id != site_id):
            raise NotFound("Department not found or does not belong to site")


async def _build_user(db: AsyncSession, ctx: AuthContext, data: dict) -> User:
    email = (data.get("email") or "").strip()
    if not email:
        raise ValidationError("Email is required")
    role = data.get("role") or "user"
    _require_assignable(ctx, role)
    if await _email_taken(db, email):
        raise Conflict("Email already exists")

    company_id, site_id, department_id = _pinned_assignment(
        ctx, data.get("company_id"), data.get("site_id"), data.get("department_id")
    )
    await _validate_chain(db, company_id, site_id, department_id)

    password = data.get("password")
    return User(
        email=email,
        password_hash=hash_password(password) if password else None,
        first_name=data.get("first_name") or "",
        last_name=data.get("last_name") or "",
        role=role,
        company_id=company_id,
        site_id=site_id,
        department_id=department_id,
        is_active=True,
    )


async def invite_user(db: AsyncSession, ctx: AuthContext, data: dict) -> dict:
    PermissionService.require_permission(ctx, "users.manage")
    user = await _build_user(db, ctx, data)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("User %s invited by %s as %s", user.id, ctx.user_id, user.role)
    return user_to_dict(user)


async def bulk_create_users(db: AsyncSession, ctx: AuthContext, rows: list[dict]) -> dict:
    """Create many users; one bad row never blocks the others."""
    PermissionService.require_permission(ctx, "users.manage")
    if not rows:
        raise ValidationError("Users array is required")
    if len(rows) > MAX_BULK_USERS:
        raise ValidationError(f"Maximum {MAX_BULK_USERS} users per batch")

    created: list[dict] = []
    failed: list[dict] = []
    for row in rows:
        email = row.get("email") or "unknown"
        try:
            user = await _build_user(db, ctx, row)
            db.add(user)
            await db.flush()
        except (ValidationError, Forbidden, NotFound, Conflict) as exc:
            failed.append({"email": email, "error": exc.message})
            continue
        created.append(user_to_dict(user))

    await db.commit()
    logger.info("Bulk user import by %s: %d created, %d failed", ctx.user_id, len(created), len(failed))
    return {"created": created, "failed": failed}


# ── Update / deactivate ───────────────────────────────────────────────


async def update_user(
    db: AsyncSession, ctx: AuthContext, user_id: uuid.UUID, changes: dict
) -> dict:
    PermissionService.require_permission(ctx, "users.manage")
    user = await _load_user(db, ctx, user_id)

    if "first_name" in changes:
        user.first_name = changes["first_name"] or ""
    if "last_name" in changes:
        user.last_name = changes["last_name"] or ""
    if "is_active" in changes:
        user.is_active = bool(changes["is_active"])

    if "site_id" in changes:
        site_id = changes["site_id"]
        if site_id is None:
            user.site_id = None
            user.department_id = None
        else:
            site = await db.get(Site, site_id)
            if site is None:
                raise NotFound("Site not found")
            if site.company_id != user.company_id:
                raise ValidationError("Site does not belong to user's company")
            if ctx.role is Role.SITE_ADMIN and ctx.site_id != site_id:
                raise Forbidden("Cannot assign user to a different site")
            user.site_id = site_id

    if "department_id" in changes:
        department_id = changes["department_id"]
        if department_id is None:
            user.department_id = None
        else:
            dept = await db.get(Department, department_id)
            if dept is None:
                raise NotFound("Department not found")
            if dept.site_id != user.site_id:
                raise ValidationError("Department does not belong to the specified site")
            if ctx.role is Role.DEPARTMENT_ADMIN and ctx.department_id != department_id:
                raise Forbidden("Cannot assign user to a different department")
            user.department_id = department_id

    role = changes.get("role")
    if role is not None and role != user.role:
        _require_assignable(ctx, role)
        user.role = role

    await db.commit()
    await db.refresh(user)
    return user_to_dict(user)


async def deactivate_user(db: AsyncSession, ctx: AuthContext, user_id: uuid.UUID) -> None:
    PermissionService.require_permission(ctx, "users.delete")
    if user_id == ctx.user_id:
        raise ValidationError("Cannot delete yourself")
    user = await _load_user(db, ctx, user_id)
    user.is_active = False
    await db.commit()
    logger.info("User %s deactivated by %s", user.id, ctx.user_id)
