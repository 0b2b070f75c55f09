"""baseline schema for organizations, surveys, responses and templates

Revision ID: 001
Revises: None
Create Date: 2026-10-18

Fresh databases built by create_all at startup are stamped at this revision.
Tables that already exist are left alone, so running it against a stamped
database is a no-op.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column("id", sa.UUID(as_uuid=True), primary_key=True)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def _fk(name: str, target: str, ondelete: str, *, nullable: bool = True, index: bool = True):
    return sa.Column(
        name,
        sa.UUID(as_uuid=True),
        sa.ForeignKey(target, ondelete=ondelete),
        nullable=nullable,
        index=index,
    )


def upgrade() -> None:
    from sqlalchemy import inspect as sa_inspect

    conn = op.get_bind()
    inspector = sa_inspect(conn)

    if not inspector.has_table("companies"):
        op.create_table(
            "companies",
            _id(),
            sa.Column("name", sa.String(255), nullable=False, unique=True),
            sa.Column("industry", sa.String(100), nullable=True),
            sa.Column("is_active", sa.Boolean(), server_default="true"),
            sa.Column("settings", postgresql.JSONB(), server_default="{}"),
            *_timestamps(),
        )

    if not inspector.has_table("sites"):
        op.create_table(
            "sites",
            _id(),
            _fk("company_id", "companies.id", "CASCADE", nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("location", sa.String(255), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint("company_id", "name", name="uq_site_name"),
        )

    if not inspector.has_table("departments"):
        op.create_table(
            "departments",
            _id(),
            _fk("site_id", "sites.id", "CASCADE", nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            *_timestamps(),
            sa.UniqueConstraint("site_id", "name", name="uq_department_name"),
        )

    if not inspector.has_table("users"):
        op.create_table(
            "users",
            _id(),
            sa.Column("email", sa.String(320), nullable=False, unique=True),
            sa.Column("password_hash", sa.String(200), nullable=True),
            sa.Column("first_name", sa.String(100), nullable=False, server_default=""),
            sa.Column("last_name", sa.String(100), nullable=False, server_default=""),
            sa.Column("role", sa.String(20), server_default="user"),
            sa.Column("is_active", sa.Boolean(), server_default="true"),
            _fk("company_id", "companies.id", "SET NULL"),
            _fk("site_id", "sites.id", "SET NULL"),
            _fk("department_id", "departments.id", "SET NULL"),
            sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
        )

    if not inspector.has_table("surveys"):
        op.create_table(
            "surveys",
            _id(),
            _fk("company_id", "companies.id", "CASCADE"),
            _fk("created_by", "users.id", "SET NULL", index=False),
            sa.Column("title", sa.String(255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("type", sa.String(20), nullable=False),
            sa.Column("status", sa.String(20), server_default="draft"),
            sa.Column("is_public", sa.Boolean(), server_default="false"),
            sa.Column("is_anonymous", sa.Boolean(), server_default="false"),
            sa.Column("default_language", sa.String(10), server_default="en"),
            sa.Column("settings", postgresql.JSONB(), server_default="{}"),
            sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
        )

    if not inspector.has_table("survey_translations"):
        op.create_table(
            "survey_translations",
            _id(),
            _fk("survey_id", "surveys.id", "CASCADE", nullable=False),
            sa.Column("language_code", sa.String(10), nullable=False),
            sa.Column("title", sa.String(255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint("survey_id", "language_code", name="uq_survey_translation"),
        )

    if not inspector.has_table("questions"):
        op.create_table(
            "questions",
            _id(),
            _fk("survey_id", "surveys.id", "CASCADE", nullable=False),
            sa.Column("type", sa.String(30), nullable=False),
            sa.Column("extended_type", sa.String(30), nullable=True),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("options", postgresql.JSONB(), server_default="{}"),
            sa.Column("is_required", sa.Boolean(), server_default="false"),
            sa.Column("order_index", sa.Integer(), nullable=False),
            *_timestamps(),
            # Reorders shuffle indices row by row inside one transaction
            sa.UniqueConstraint(
                "survey_id",
                "order_index",
                name="uq_question_order",
                deferrable=True,
                initially="DEFERRED",
            ),
        )

    if not inspector.has_table("question_translations"):
        op.create_table(
            "question_translations",
            _id(),
            _fk("question_id", "questions.id", "CASCADE", nullable=False),
            sa.Column("language_code", sa.String(10), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("options", postgresql.JSONB(), server_default="{}"),
            *_timestamps(),
            sa.UniqueConstraint("question_id", "language_code", name="uq_question_translation"),
        )

    if not inspector.has_table("survey_distributions"):
        op.create_table(
            "survey_distributions",
            _id(),
            _fk("survey_id", "surveys.id", "CASCADE", nullable=False),
            _fk("company_id", "companies.id", "CASCADE"),
            sa.Column("channel", sa.String(20), nullable=False),
            sa.Column("target_url", sa.Text(), nullable=False),
            sa.Column("qr_code_url", sa.Text(), nullable=True),
            sa.Column("payload", postgresql.JSONB(), server_default="{}"),
            _fk("created_by", "users.id", "SET NULL", index=False),
            sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
        )

    if not inspector.has_table("responses"):
        op.create_table(
            "responses",
            _id(),
            _fk("survey_id", "surveys.id", "CASCADE", nullable=False),
            _fk("respondent_id", "users.id", "SET NULL"),
            _fk("distribution_id", "survey_distributions.id", "SET NULL", index=False),
            sa.Column("anonymous_token", sa.String(120), nullable=False, index=True),
            sa.Column("ip_address", sa.String(64), nullable=True),
            sa.Column("language_used", sa.String(10), server_default="en"),
            sa.Column("status", sa.String(20), server_default="started", index=True),
            sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("metadata", postgresql.JSONB(), server_default="{}"),
            *_timestamps(),
        )

    if not inspector.has_table("answers"):
        op.create_table(
            "answers",
            _id(),
            _fk("response_id", "responses.id", "CASCADE", nullable=False),
            _fk("question_id", "questions.id", "CASCADE", nullable=False),
            sa.Column("value", postgresql.JSONB(), nullable=True),
            sa.Column("answered_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
            *_timestamps(),
            sa.UniqueConstraint("response_id", "question_id", name="uq_answer_response_question"),
        )

    if not inspector.has_table("survey_templates"):
        op.create_table(
            "survey_templates",
            _id(),
            _fk("company_id", "companies.id", "CASCADE"),
            _fk("created_by", "users.id", "SET NULL", index=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("category", sa.String(100), server_default="general"),
            sa.Column("type", sa.String(20), server_default="custom"),
            sa.Column("is_global", sa.Boolean(), server_default="false"),
            sa.Column("is_anonymous", sa.Boolean(), server_default="false"),
            sa.Column("default_settings", postgresql.JSONB(), server_default="{}"),
            sa.Column("use_count", sa.Integer(), server_default="0"),
            *_timestamps(),
        )

    if not inspector.has_table("template_questions"):
        op.create_table(
            "template_questions",
            _id(),
            _fk("template_id", "survey_templates.id", "CASCADE", nullable=False),
            sa.Column("type", sa.String(30), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("options", postgresql.JSONB(), server_default="{}"),
            sa.Column("is_required", sa.Boolean(), server_default="false"),
            sa.Column("order_index", sa.Integer(), nullable=False),
            *_timestamps(),
        )


def downgrade() -> None:
    op.drop_table("template_questions")
    op.drop_table("survey_templates")
    op.drop_table("answers")
    op.drop_table("responses")
    op.drop_table("survey_distributions")
    op.drop_table("question_translations")
    op.drop_table("questions")
    op.drop_table("survey_translations")
    op.drop_table("surveys")
    op.drop_table("users")
    op.drop_table("departments")
    op.drop_table("sites")
    op.drop_table("companies")
