from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import Field

from app.schemas.common import CamelModel

# ── Surveys ──────────────────────────────────────────────────────────────────


class SurveyCreate(CamelModel):
    # Left optional so the service reports the domain message
    title: str | None = None
    type: str | None = None
    description: str | None = None
    status: str | None = None
    is_public: bool = False
    is_anonymous: bool | None = None
    allow_anonymous: bool | None = None
    default_language: str | None = None
    settings: dict | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    company_id: uuid.UUID | None = None


class SurveyUpdate(CamelModel):
    title: str | None = None
    type: str | None = None
    description: str | None = None
    status: str | None = None
    is_public: bool | None = None
    is_anonymous: bool | None = None
    default_language: str | None = None
    settings: dict | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None


class SurveyTranslationBody(CamelModel):
    language_code: str
    title: str
    description: str | None = None


# ── Questions ────────────────────────────────────────────────────────────────


class QuestionCreate(CamelModel):
    type: str | None = None
    content: str | None = None
    options: dict | None = None
    is_required: bool = False


class QuestionUpdate(CamelModel):
    type: str | None = None
    content: str | None = None
    options: dict | None = None
    is_required: bool | None = None


class ReorderBody(CamelModel):
    question_ids: list[uuid.UUID]


class QuestionTranslationBody(CamelModel):
    language_code: str
    content: str
    options: dict | None = None


# ── Templates ────────────────────────────────────────────────────────────────


class TemplateQuestionIn(CamelModel):
    type: str | None = None
    content: str | None = None
    options: dict | None = None
    is_required: bool = False


class TemplateCreate(CamelModel):
    name: str | None = None
    description: str | None = None
    category: str | None = None
    type: str = "custom"
    is_global: bool = False
    is_anonymous: bool = False
    default_settings: dict | None = None
    questions: list[TemplateQuestionIn] = Field(default_factory=list)


class TemplateUpdate(CamelModel):
    name: str | None = None
    description: str | None = None
    category: str | None = None
    is_anonymous: bool | None = None


class TemplateUse(CamelModel):
    title: str | None = None
    description: str | None = None
    company_id: uuid.UUID | None = None


class SaveAsTemplate(CamelModel):
    name: str | None = None
    description: str | None = None
    category: str | None = None
    is_global: bool = False
