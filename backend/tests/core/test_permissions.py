"""Unit tests for the role registry and caller context."""

from __future__ import annotations

import uuid
from types import SimpleNamespace

import pytest

from app.core.permissions import (
    ALL_APP_PERMISSION_KEYS,
    ROLE_POLICIES,
    AuthContext,
    Role,
    policy_for,
)

COMPANY = uuid.uuid4()
SITE = uuid.uuid4()
DEPT = uuid.uuid4()


def _ctx(role: Role, **kwargs) -> AuthContext:
    return AuthContext(user_id=uuid.uuid4(), role=role, **kwargs)


class TestRoles:
    def test_ladder_is_strict(self):
        ranks = [r.rank for r in Role]
        assert ranks == sorted(ranks, reverse=True)
        assert len(set(ranks)) == len(ranks)

    def test_unknown_role_degrades_to_user(self):
        assert Role.parse("wizard") is Role.USER
        assert policy_for("wizard").dashboard == "personal"

    def test_every_role_has_a_policy(self):
        assert set(ROLE_POLICIES) == set(Role)

    def test_policy_permissions_are_known_keys(self):
        for policy in ROLE_POLICIES.values():
            assert policy.permissions <= ALL_APP_PERMISSION_KEYS | {"*"}


class TestAllows:
    def test_super_admin_allows_everything(self):
        assert _ctx(Role.SUPER_ADMIN).allows("companies.manage")

    @pytest.mark.parametrize(
        "role,permission,expected",
        [
            (Role.COMPANY_ADMIN, "analytics.export", True),
            (Role.COMPANY_ADMIN, "companies.manage", False),
            (Role.SITE_ADMIN, "templates.manage", False),
            (Role.DEPARTMENT_ADMIN, "analytics.company", False),
            (Role.USER, "surveys.manage", False),
            (Role.USER, "surveys.view", True),
        ],
    )
    def test_role_permissions(self, role, permission, expected):
        assert _ctx(role, company_id=COMPANY).allows(permission) is expected


class TestAssignment:
    def test_role_ceiling(self):
        admin = _ctx(Role.SITE_ADMIN, company_id=COMPANY, site_id=SITE)
        assert admin.can_assign("user")
        assert admin.can_assign(Role.SITE_ADMIN)
        assert not admin.can_assign("company_admin")
        assert not admin.can_assign("nonsense")

    def test_user_assigns_nothing(self):
        assert not _ctx(Role.USER).can_assign("user")


class TestCoversMember:
    def test_company_admin_covers_own_company_only(self):
        admin = _ctx(Role.COMPANY_ADMIN, company_id=COMPANY)
        assert admin.covers_member(COMPANY, None, None)
        assert not admin.covers_member(uuid.uuid4(), None, None)
        assert not admin.covers_member(None, None, None)

    def test_site_admin_needs_matching_site(self):
        admin = _ctx(Role.SITE_ADMIN, company_id=COMPANY, site_id=SITE)
        assert admin.covers_member(COMPANY, SITE, DEPT)
        assert not admin.covers_member(COMPANY, uuid.uuid4(), None)

    def test_department_admin_needs_matching_department(self):
        admin = _ctx(Role.DEPARTMENT_ADMIN, company_id=COMPANY, site_id=SITE, department_id=DEPT)
        assert admin.covers_member(COMPANY, SITE, DEPT)
        assert not admin.covers_member(COMPANY, SITE, None)

    def test_plain_user_covers_nobody(self):
        assert not _ctx(Role.USER, company_id=COMPANY).covers_member(COMPANY, None, None)

    def test_super_admin_covers_everyone(self):
        assert _ctx(Role.SUPER_ADMIN).covers_member(None, None, None)


class TestCompanyAccess:
    def test_global_rows_are_super_admin_only(self):
        assert _ctx(Role.SUPER_ADMIN).can_access_company(None)
        assert not _ctx(Role.COMPANY_ADMIN, company_id=COMPANY).can_access_company(None)

    def test_from_user(self):
        user = SimpleNamespace(
            id=uuid.uuid4(), role="site_admin", company_id=COMPANY,
            site_id=SITE, department_id=None, email="s@a.test",
        )
        ctx = AuthContext.from_user(user)
        assert ctx.role is Role.SITE_ADMIN
        assert ctx.policy.scope == "site_id"
        assert ctx.is_admin and not ctx.is_super_admin
