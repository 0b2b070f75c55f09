from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.core.errors import Conflict, Forbidden, Unauthorized
from app.core.permissions import policy_for
from app.core.rate_limit import limiter
from app.core.security import create_access_token, hash_password, verify_password
from app.database import get_db
from app.models.user import User
from app.schemas.auth import LoginRequest, RegisterRequest, TokenResponse
from app.services.user_service import user_to_dict

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def _me(user: User) -> dict:
    data = user_to_dict(user)
    policy = policy_for(user.role)
    data["permissions"] = sorted(policy.permissions)
    data["dashboard"] = policy.dashboard
    return data


@router.post("/register", response_model=TokenResponse, status_code=201)
@limiter.limit("5/minute")
async def register(request: Request, body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    """Self-registration always creates a plain user without an organization."""
    existing = await db.execute(
        select(User.id).where(func.lower(User.email) == body.email.lower())
    )
    if existing.first() is not None:
        raise Conflict("Email already exists")

    user = User(
        email=body.email,
        password_hash=hash_password(body.password),
        first_name=body.first_name,
        last_name=body.last_name,
        role="user",
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("User %s registered", user.id)
    return TokenResponse(access_token=create_access_token(user.id, user.role), user=_me(user))


@router.post("/login", response_model=TokenResponse)
@limiter.limit("10/minute")
async def login(request: Request, body: LoginRequest, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).where(func.lower(User.email) == body.email.lower()))
    user = result.scalar_one_or_none()
    if not user or not user.password_hash:
        raise Unauthorized("Invalid email or password")
    if not verify_password(body.password, user.password_hash):
        raise Unauthorized("Invalid email or password")
    if not user.is_active:
        raise Forbidden("Account disabled")

    user.last_login_at = datetime.now(timezone.utc)
    await db.commit()

    return TokenResponse(access_token=create_access_token(user.id, user.role), user=_me(user))


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    return _me(user)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(user: User = Depends(get_current_user)):
    """Issue a new access token. Re-reads role and active status from DB."""
    return TokenResponse(access_token=create_access_token(user.id, user.role), user=_me(user))
