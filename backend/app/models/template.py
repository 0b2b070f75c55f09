from __future__ import annotations

import uuid

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin, UUIDMixin


class SurveyTemplate(Base, UUIDMixin, TimestampMixin):
    """Reusable survey blueprint. company_id NULL means global."""

    __tablename__ = "survey_templates"

    company_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), index=True
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL")
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(100), default="general")
    type: Mapped[str] = mapped_column(String(20), default="custom")
    is_global: Mapped[bool] = mapped_column(Boolean, default=False)
    is_anonymous: Mapped[bool] = mapped_column(Boolean, default=False)
    default_settings: Mapped[dict | None] = mapped_column(JSONB, default=dict)
    use_count: Mapped[int] = mapped_column(Integer, default=0)

    questions = relationship(
        "TemplateQuestion",
        order_by="TemplateQuestion.order_index",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class TemplateQuestion(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "template_questions"

    template_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("survey_templates.id", ondelete="CASCADE"), index=True
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[dict | None] = mapped_column(JSONB, default=dict)
    is_required: Mapped[bool] = mapped_column(Boolean, default=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)
