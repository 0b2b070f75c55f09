from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin, UUIDMixin


class Distribution(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "survey_distributions"

    survey_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("surveys.id", ondelete="CASCADE"), index=True
    )
    # Company that created the distribution; global surveys are shared but their
    # distributions are not
    company_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("companies.id", ondelete="CASCADE"), nullable=True, index=True
    )
    channel: Mapped[str] = mapped_column(String(20), nullable=False)  # link/qr_code/embed/email
    target_url: Mapped[str] = mapped_column(Text, nullable=False)
    # PNG data URL, only for the qr_code channel
    qr_code_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    # embed: {"embedCode"}; email: {"recipients", "results", "subject"}
    payload: Mapped[dict | None] = mapped_column(JSONB, default=dict)
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL")
    )
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
