"""Integration tests for /auth."""

from __future__ import annotations

from tests.conftest import auth_headers, create_user


class TestRegister:
    async def test_register_creates_plain_user(self, client):
        resp = await client.post(
            "/api/v1/auth/register",
            json={"email": "new@test.com", "password": "Secret123", "firstName": "Ada"},
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["accessToken"]
        assert data["tokenType"] == "bearer"
        assert data["user"]["role"] == "user"
        assert data["user"]["firstName"] == "Ada"
        assert data["user"]["dashboard"] == "personal"

    async def test_duplicate_email_is_conflict(self, client, db):
        await create_user(db, email="taken@test.com")
        resp = await client.post(
            "/api/v1/auth/register",
            json={"email": "TAKEN@test.com", "password": "Secret123"},
        )
        assert resp.status_code == 409
        assert resp.json() == {"error": "Email already exists"}

    async def test_weak_password_fails_validation(self, client):
        resp = await client.post(
            "/api/v1/auth/register", json={"email": "w@test.com", "password": "short"}
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Validation failed"


class TestLogin:
    async def test_login_success(self, client, db):
        await create_user(db, email="login@test.com", password="Secret123")
        resp = await client.post(
            "/api/v1/auth/login", json={"email": "login@test.com", "password": "Secret123"}
        )
        assert resp.status_code == 200
        assert resp.json()["user"]["email"] == "login@test.com"

    async def test_wrong_password(self, client, db):
        await create_user(db, email="login@test.com", password="Secret123")
        resp = await client.post(
            "/api/v1/auth/login", json={"email": "login@test.com", "password": "Wrong1234"}
        )
        assert resp.status_code == 401
        assert resp.json() == {"error": "Invalid email or password"}

    async def test_disabled_account(self, client, db):
        await create_user(db, email="off@test.com", password="Secret123", is_active=False)
        resp = await client.post(
            "/api/v1/auth/login", json={"email": "off@test.com", "password": "Secret123"}
        )
        assert resp.status_code == 403


class TestMe:
    async def test_me_includes_permissions(self, client, company_admin):
        resp = await client.get("/api/v1/auth/me", headers=auth_headers(company_admin))
        assert resp.status_code == 200
        data = resp.json()
        assert data["role"] == "company_admin"
        assert "surveys.manage" in data["permissions"]
        assert data["dashboard"] == "company"

    async def test_bad_token(self, client):
        resp = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401
        assert resp.json() == {"error": "Invalid or expired token"}


class TestRefresh:
    async def test_refresh_reflects_current_role(self, client, db, plain_user):
        headers = auth_headers(plain_user)
        plain_user.role = "department_admin"
        await db.flush()

        resp = await client.post("/api/v1/auth/refresh", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["user"]["role"] == "department_admin"
