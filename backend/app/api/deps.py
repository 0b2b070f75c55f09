from __future__ import annotations

import uuid

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Unauthorized
from app.core.permissions import AuthContext
from app.core.security import decode_access_token
from app.database import get_db
from app.models.user import User


async def get_current_user(
    request: Request, db: AsyncSession = Depends(get_db)
) -> User:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        raise Unauthorized("Not authenticated")
    token = auth[7:]
    payload = decode_access_token(token)
    if payload is None:
        raise Unauthorized("Invalid or expired token")
    try:
        user_id = uuid.UUID(payload.get("sub", ""))
    except ValueError:
        raise Unauthorized("Invalid or expired token") from None
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise Unauthorized("User not found or inactive")
    return user


async def get_optional_user(request: Request, db: AsyncSession = Depends(get_db)) -> User | None:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    try:
        return await get_current_user(request, db)
    except Unauthorized:
        return None


async def get_auth_context(user: User = Depends(get_current_user)) -> AuthContext:
    return AuthContext.from_user(user)


async def get_optional_context(
    user: User | None = Depends(get_optional_user),
) -> AuthContext | None:
    return AuthContext.from_user(user) if user else None


def require_permission(app_perm: str):
    """Dependency factory that checks a single app-level permission via PermissionService."""
    async def _check(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
        from app.services.permission_service import PermissionService

        PermissionService.require_permission(ctx, app_perm)
        return ctx
    return _check
