from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from crnaclub.guidance.engine.rules.models import utc_now


class Base(DeclarativeBase):
    pass


class UserGuidanceState(Base):
    """One row per user holding the whole prompt-state blob (last writer wins)."""

    __tablename__ = "user_guidance_state"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    prompt_state: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )
