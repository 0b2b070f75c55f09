from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin, UUIDMixin


class Survey(Base, UUIDMixin, TimestampMixin):
    """A survey owned by a company, or global when company_id is NULL."""

    __tablename__ = "surveys"

    company_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), index=True
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL")
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)  # nps/custom
    status: Mapped[str] = mapped_column(String(20), default="draft")
    # Statuses: draft, active, closed

    is_public: Mapped[bool] = mapped_column(Boolean, default=False)
    is_anonymous: Mapped[bool] = mapped_column(Boolean, default=False)
    default_language: Mapped[str] = mapped_column(String(10), default="en")
    settings: Mapped[dict | None] = mapped_column(JSONB, default=dict)

    starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    creator = relationship("User", foreign_keys=[created_by], lazy="selectin")
    company = relationship("Company", lazy="selectin")


class SurveyTranslation(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "survey_translations"
    __table_args__ = (
        UniqueConstraint("survey_id", "language_code", name="uq_survey_translation"),
    )

    survey_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("surveys.id", ondelete="CASCADE"), index=True
    )
    language_code: Mapped[str] = mapped_column(String(10), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)


class Question(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "questions"
    __table_args__ = (
        UniqueConstraint(
            "survey_id", "order_index", name="uq_question_order", deferrable=True,
            initially="DEFERRED",
        ),
    )

    survey_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("surveys.id", ondelete="CASCADE"), index=True
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    # UI alias the question was created with, e.g. "rating" for a rating_scale
    extended_type: Mapped[str | None] = mapped_column(String(30), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[dict | None] = mapped_column(JSONB, default=dict)
    # {choices?, min?, max?, rows?, columns?, logicRules?: [{id, condition, action}]}
    is_required: Mapped[bool] = mapped_column(Boolean, default=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)

    @property
    def display_type(self) -> str:
        return self.extended_type or self.type


class QuestionTranslation(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "question_translations"
    __table_args__ = (
        UniqueConstraint("question_id", "language_code", name="uq_question_translation"),
    )

    question_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("questions.id", ondelete="CASCADE"), index=True
    )
    language_code: Mapped[str] = mapped_column(String(10), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[dict | None] = mapped_column(JSONB, default=dict)
