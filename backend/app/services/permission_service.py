"""Centralized permission and tenancy checks. All services go through this."""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Forbidden, NotFound
from app.core.permissions import AuthContext
from app.models.organization import Department, Site
from app.models.survey import Survey
from app.models.template import SurveyTemplate


class PermissionService:
    """Raises ``Forbidden``/``NotFound``; never returns a denial flag to callers."""

    @staticmethod
    def require_permission(ctx: AuthContext, permission: str) -> None:
        if not ctx.allows(permission):
            raise Forbidden("Insufficient permissions", required=permission)

    @staticmethod
    def require_company(ctx: AuthContext, company_id: uuid.UUID | None) -> None:
        if not ctx.can_access_company(company_id):
            raise Forbidden("Access denied")

    @staticmethod
    async def load_survey(
        db: AsyncSession, ctx: AuthContext, survey_id: uuid.UUID, *, write: bool = False
    ) -> Survey:
        """Fetch a survey the caller may see (or mutate, with ``write``).

        Missing rows are ``NotFound``; rows outside the caller's company are
        ``Forbidden``. Global surveys are readable by everyone and writable
        only by super_admin.
        """
        survey = await db.get(Survey, survey_id)
        if survey is None:
            raise NotFound("Survey not found")
        if survey.company_id is None:
            if write and not ctx.is_super_admin:
                raise Forbidden("Only super admins can modify global surveys")
            return survey
        PermissionService.require_company(ctx, survey.company_id)
        return survey

    @staticmethod
    async def load_survey_for_analytics(
        db: AsyncSession, ctx: AuthContext, survey_id: uuid.UUID
    ) -> Survey:
        # Global survey responses span tenants, so only super_admin aggregates them
        survey = await db.get(Survey, survey_id)
        if survey is None:
            raise NotFound("Survey not found")
        PermissionService.require_company(ctx, survey.company_id)
        return survey

    @staticmethod
    async def load_template(
        db: AsyncSession, ctx: AuthContext, template_id: uuid.UUID, *, write: bool = False
    ) -> SurveyTemplate:
        template = await db.get(SurveyTemplate, template_id)
        if template is None:
            raise NotFound("Template not found")
        if template.is_global or template.company_id is None:
            if write and not ctx.is_super_admin:
                raise Forbidden("Only super admins can modify global templates")
            return template
        PermissionService.require_company(ctx, template.company_id)
        return template

    @staticmethod
    async def site_company(db: AsyncSession, site_id: uuid.UUID) -> uuid.UUID:
        company_id = (
            await db.execute(select(Site.company_id).where(Site.id == site_id))
        ).scalar_one_or_none()
        if company_id is None:
            raise NotFound("Site not found")
        return company_id

    @staticmethod
    async def department_chain(
        db: AsyncSession, department_id: uuid.UUID
    ) -> tuple[uuid.UUID, uuid.UUID]:
        """Return (company_id, site_id) owning a department."""
        row = (
            await db.execute(
                select(Site.company_id, Department.site_id)
                .join(Site, Site.id == Department.site_id)
                .where(Department.id == department_id)
            )
        ).first()
        if row is None:
            raise NotFound("Department not found")
        return row[0], row[1]
