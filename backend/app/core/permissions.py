"""Role registry: the single source of truth for what each role may do and see.

Roles form a strict ladder (super_admin > company_admin > site_admin >
department_admin > user). Everything that used to be an ``if role == ...``
chain in a handler is a lookup in ``ROLE_POLICIES`` instead.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field


class Role(str, enum.Enum):
    SUPER_ADMIN = "super_admin"
    COMPANY_ADMIN = "company_admin"
    SITE_ADMIN = "site_admin"
    DEPARTMENT_ADMIN = "department_admin"
    USER = "user"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    @classmethod
    def parse(cls, value: str | Role) -> Role:
        """Parse a stored role string. Unknown strings degrade to USER."""
        if isinstance(value, Role):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.USER


_RANKS = {
    Role.SUPER_ADMIN: 4,
    Role.COMPANY_ADMIN: 3,
    Role.SITE_ADMIN: 2,
    Role.DEPARTMENT_ADMIN: 1,
    Role.USER: 0,
}

ADMIN_ROLES = frozenset(
    {Role.SUPER_ADMIN, Role.COMPANY_ADMIN, Role.SITE_ADMIN, Role.DEPARTMENT_ADMIN}
)

# ---------------------------------------------------------------------------
# App-level permission keys
# ---------------------------------------------------------------------------

APP_PERMISSIONS: dict[str, dict] = {
    "surveys": {
        "label": "Surveys",
        "permissions": {
            "surveys.view": "View surveys of the own company",
            "surveys.manage": "Create, edit, duplicate, and delete surveys and questions",
        },
    },
    "distributions": {
        "label": "Distributions",
        "permissions": {
            "distributions.manage": "Share surveys by link, QR code, embed, or email",
        },
    },
    "templates": {
        "label": "Templates",
        "permissions": {
            "templates.use": "Create surveys from templates",
            "templates.manage": "Create, edit, and delete company templates",
            "templates.global": "Create and delete global templates",
        },
    },
    "analytics": {
        "label": "Analytics",
        "permissions": {
            "analytics.view": "View survey analytics and individual responses",
            "analytics.company": "View company-wide analytics",
            "analytics.export": "Export responses as CSV, JSON, or PDF",
        },
    },
    "organizations": {
        "label": "Organizations",
        "permissions": {
            "companies.manage": "Create and delete companies",
            "companies.edit": "Edit the own company",
            "sites.manage": "Create and delete sites",
            "sites.edit": "Edit sites",
            "departments.manage": "Create, edit, and delete departments",
        },
    },
    "users": {
        "label": "Users",
        "permissions": {
            "users.manage": "Invite and edit users within scope",
            "users.delete": "Deactivate users within scope",
        },
    },
}

ALL_APP_PERMISSION_KEYS: set[str] = set()
for group in APP_PERMISSIONS.values():
    ALL_APP_PERMISSION_KEYS.update(group["permissions"].keys())

# ---------------------------------------------------------------------------
# Per-role policy table
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RolePolicy:
    role: Role
    # Column the caller's rows are filtered on; None means unrestricted
    scope: str | None
    # Roles this role may hand out when inviting or editing users
    assignable: frozenset[Role]
    # Which dashboard projection this role receives
    dashboard: str
    permissions: frozenset[str] = field(default_factory=frozenset)

    def allows(self, permission: str) -> bool:
        return "*" in self.permissions or permission in self.permissions


ROLE_POLICIES: dict[Role, RolePolicy] = {
    Role.SUPER_ADMIN: RolePolicy(
        role=Role.SUPER_ADMIN,
        scope=None,
        assignable=frozenset(Role),
        dashboard="platform",
        permissions=frozenset({"*"}),
    ),
    Role.COMPANY_ADMIN: RolePolicy(
        role=Role.COMPANY_ADMIN,
        scope="company_id",
        assignable=frozenset(
            {Role.COMPANY_ADMIN, Role.SITE_ADMIN, Role.DEPARTMENT_ADMIN, Role.USER}
        ),
        dashboard="company",
        permissions=frozenset({
            "surveys.view", "surveys.manage", "distributions.manage",
            "templates.use", "templates.manage",
            "analytics.view", "analytics.company", "analytics.export",
            "companies.edit", "sites.manage", "sites.edit", "departments.manage",
            "users.manage", "users.delete",
        }),
    ),
    Role.SITE_ADMIN: RolePolicy(
        role=Role.SITE_ADMIN,
        scope="site_id",
        assignable=frozenset({Role.SITE_ADMIN, Role.DEPARTMENT_ADMIN, Role.USER}),
        dashboard="site",
        permissions=frozenset({
            "surveys.view", "surveys.manage", "distributions.manage", "templates.use",
            "analytics.view", "analytics.company", "analytics.export",
            "sites.edit", "departments.manage",
            "users.manage", "users.delete",
        }),
    ),
    Role.DEPARTMENT_ADMIN: RolePolicy(
        role=Role.DEPARTMENT_ADMIN,
        scope="department_id",
        assignable=frozenset({Role.DEPARTMENT_ADMIN, Role.USER}),
        dashboard="department",
        permissions=frozenset({
            "surveys.view", "surveys.manage", "distributions.manage", "templates.use",
            "analytics.view", "users.manage",
        }),
    ),
    Role.USER: RolePolicy(
        role=Role.USER,
        scope="id",
        assignable=frozenset(),
        dashboard="personal",
        permissions=frozenset({"surveys.view"}),
    ),
}


def policy_for(role: Role | str) -> RolePolicy:
    return ROLE_POLICIES[Role.parse(role)]


# ---------------------------------------------------------------------------
# Explicit caller context
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuthContext:
    """Who is acting. Passed explicitly into every service operation."""

    user_id: uuid.UUID
    role: Role
    company_id: uuid.UUID | None = None
    site_id: uuid.UUID | None = None
    department_id: uuid.UUID | None = None
    email: str | None = None

    @classmethod
    def from_user(cls, user) -> AuthContext:
        return cls(
            user_id=user.id,
            role=Role.parse(user.role),
            company_id=user.company_id,
            site_id=user.site_id,
            department_id=user.department_id,
            email=user.email,
        )

    @property
    def policy(self) -> RolePolicy:
        return ROLE_POLICIES[self.role]

    @property
    def is_super_admin(self) -> bool:
        return self.role is Role.SUPER_ADMIN

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    def allows(self, permission: str) -> bool:
        return self.policy.allows(permission)

    def can_access_company(self, company_id: uuid.UUID | None) -> bool:
        """Company-level tenancy check used for surveys, templates and analytics."""
        if self.is_super_admin:
            return True
        return company_id is not None and company_id == self.company_id

    def can_assign(self, role: Role | str) -> bool:
        try:
            target = role if isinstance(role, Role) else Role(role)
        except ValueError:
            return False
        return target in self.policy.assignable

    def covers_member(
        self,
        company_id: uuid.UUID | None,
        site_id: uuid.UUID | None,
        department_id: uuid.UUID | None,
    ) -> bool:
        """True when a user with the given assignment falls within this caller's scope."""
        scope = self.policy.scope
        if scope is None:
            return True
        if company_id is None or company_id != self.company_id:
            return False
        assignment = {"company_id": company_id, "site_id": site_id, "department_id": department_id}
        if scope not in assignment:
            # Plain users manage nobody
            return False
        mine = getattr(self, scope)
        return mine is not None and assignment[scope] == mine
