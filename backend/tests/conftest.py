"""Shared test fixtures for the Qualitivate backend.

Provides:
- Async PostgreSQL test database (session-scoped engine, per-test rollback)
- FastAPI test client with overridden DB dependency
- Factory helpers for companies, sites, departments, users, surveys and questions
"""

from __future__ import annotations

import os
import uuid

# Set test environment BEFORE any app imports so Settings() picks them up.
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-pytest-only")
os.environ.setdefault("ENVIRONMENT", "development")

import asyncio

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event as sa_event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.security import create_access_token, hash_password
from app.models.base import Base

# ---------------------------------------------------------------------------
# Database engine
# ---------------------------------------------------------------------------


def _test_db_url() -> str:
    user = os.getenv("POSTGRES_USER", "qualitivate")
    password = os.getenv("POSTGRES_PASSWORD", "qualitivate")
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    db = os.getenv("TEST_POSTGRES_DB", "qualitivate_test")
    return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{db}"


@pytest.fixture(scope="session")
def test_engine():
    """Create a test database engine and all tables. Drops tables at teardown.

    Sync fixture so the engine is not bound to an event loop. NullPool makes
    every ``engine.connect()`` open a fresh asyncpg connection on the current
    loop.
    """
    url = _test_db_url()
    engine = create_async_engine(url, echo=False, poolclass=NullPool)

    async def _setup():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)

    async def _teardown():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()

    try:
        asyncio.run(_setup())
    except Exception as exc:
        asyncio.run(engine.dispose())
        pytest.skip(f"Test database not available ({exc})")

    yield engine

    asyncio.run(_teardown())


# ---------------------------------------------------------------------------
# Per-test transactional session (savepoint rollback pattern)
# ---------------------------------------------------------------------------


@pytest.fixture
async def db(test_engine):
    """Provide a transactional session that rolls back after each test.

    An outer transaction wraps the whole test. ``session.commit()`` releases
    the current savepoint and the listener opens a new one; teardown rolls
    the outer transaction back.
    """
    conn = await test_engine.connect()
    trans = await conn.begin()
    session = AsyncSession(bind=conn, expire_on_commit=False)

    await conn.begin_nested()

    @sa_event.listens_for(session.sync_session, "after_transaction_end")
    def _restart_savepoint(sess, transaction):
        if conn.closed or conn.invalidated:
            return
        if not conn.in_nested_transaction():
            conn.sync_connection.begin_nested()

    yield session

    await session.close()
    await trans.rollback()
    await conn.close()


# ---------------------------------------------------------------------------
# FastAPI test app + HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
async def app(db):
    """Minimal FastAPI test app with ``get_db`` overridden to use the test session."""
    from fastapi import FastAPI

    from app.api.v1.router import api_router
    from app.config import settings
    from app.core.rate_limit import limiter
    from app.database import get_db
    from app.main import register_exception_handlers

    test_app = FastAPI()
    test_app.state.limiter = limiter
    register_exception_handlers(test_app)
    test_app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    async def _override_get_db():
        yield db

    test_app.dependency_overrides[get_db] = _override_get_db
    yield test_app
    test_app.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    """HTTP test client for the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c


@pytest.fixture(autouse=True)
def _disable_rate_limiter():
    """Disable slowapi rate limiting during tests to avoid 429 responses."""
    from app.core.rate_limit import limiter

    limiter.enabled = False
    yield
    limiter.enabled = True


# ---------------------------------------------------------------------------
# Factory helpers
# ---------------------------------------------------------------------------


async def create_company(db, *, name=None, **kwargs):
    from app.models.organization import Company

    company = Company(
        name=name or f"Company {uuid.uuid4().hex[:8]}",
        industry=kwargs.get("industry"),
        is_active=kwargs.get("is_active", True),
        settings=kwargs.get("settings", {}),
    )
    db.add(company)
    await db.flush()
    return company


async def create_site(db, *, company_id, name=None, location=None):
    from app.models.organization import Site

    site = Site(company_id=company_id, name=name or f"Site {uuid.uuid4().hex[:6]}", location=location)
    db.add(site)
    await db.flush()
    return site


async def create_department(db, *, site_id, name=None):
    from app.models.organization import Department

    dept = Department(site_id=site_id, name=name or f"Dept {uuid.uuid4().hex[:6]}")
    db.add(dept)
    await db.flush()
    return dept


async def create_user(
    db,
    *,
    email=None,
    role="user",
    password="TestPassword1",
    first_name="Test",
    last_name="User",
    company_id=None,
    site_id=None,
    department_id=None,
    is_active=True,
):
    """Insert a user into the test database."""
    from app.models.user import User

    user = User(
        email=email or f"test-{uuid.uuid4().hex[:8]}@example.com",
        first_name=first_name,
        last_name=last_name,
        password_hash=hash_password(password),
        role=role,
        is_active=is_active,
        company_id=company_id,
        site_id=site_id,
        department_id=department_id,
    )
    db.add(user)
    await db.flush()
    return user


async def create_survey(
    db,
    *,
    company_id=None,
    created_by=None,
    title="Test Survey",
    type="custom",
    status="active",
    **kwargs,
):
    """Insert a survey into the test database."""
    from app.models.survey import Survey

    survey = Survey(
        company_id=company_id,
        created_by=created_by,
        title=title,
        description=kwargs.get("description"),
        type=type,
        status=status,
        is_public=kwargs.get("is_public", True),
        is_anonymous=kwargs.get("is_anonymous", False),
        default_language=kwargs.get("default_language", "en"),
        settings=kwargs.get("settings", {}),
        starts_at=kwargs.get("starts_at"),
        ends_at=kwargs.get("ends_at"),
    )
    db.add(survey)
    await db.flush()
    return survey


async def create_question(
    db,
    *,
    survey_id,
    order_index=0,
    type="text_short",
    content="Question?",
    is_required=False,
    options=None,
):
    from app.models.survey import Question

    question = Question(
        survey_id=survey_id,
        type=type,
        content=content,
        options=options if options is not None else {},
        is_required=is_required,
        order_index=order_index,
    )
    db.add(question)
    await db.flush()
    return question


def auth_headers(user) -> dict[str, str]:
    """Generate Bearer token headers for a test user."""
    token = create_access_token(user.id, user.role)
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Convenience fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def org(db):
    """A company with one site and one department."""
    company = await create_company(db, name="Acme")
    site = await create_site(db, company_id=company.id, name="HQ")
    dept = await create_department(db, site_id=site.id, name="Support")
    return {"company": company, "site": site, "department": dept}


@pytest.fixture
async def super_admin(db):
    return await create_user(db, email="root@test.com", role="super_admin")


@pytest.fixture
async def company_admin(db, org):
    return await create_user(
        db, email="admin@acme.com", role="company_admin", company_id=org["company"].id
    )


@pytest.fixture
async def plain_user(db, org):
    return await create_user(
        db,
        email="user@acme.com",
        role="user",
        company_id=org["company"].id,
        site_id=org["site"].id,
        department_id=org["department"].id,
    )
