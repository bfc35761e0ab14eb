# src/backstage_gate/models/analytics.py
"""Funnel analytics event model."""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backstage_gate.db.session import Base
from backstage_gate.db.time import utcnow


class FunnelEventType(enum.StrEnum):
    VIEW = "view"
    SUBMIT = "submit"
    VERIFY_STEP = "verify_step"
    DOWNLOAD = "download"


class FunnelEvent(Base):
    """A single funnel transition, only ever read in aggregate."""

    __tablename__ = "funnel_event"
    __table_args__ = (Index("ix_funnel_event_gate_type_ts", "gate_id", "event_type", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    gate_id: Mapped[int] = mapped_column(Integer, ForeignKey("gate.id"), nullable=False)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    # Set for verify_step events only.
    step: Mapped[str | None] = mapped_column(String(50), nullable=True)
    session_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    submission_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    referrer: Mapped[str | None] = mapped_column(Text, nullable=True)
    utm_source: Mapped[str | None] = mapped_column(String(255), nullable=True)
    utm_medium: Mapped[str | None] = mapped_column(String(255), nullable=True)
    utm_campaign: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # ISO 3166-1 alpha-2, upper-cased.
    country: Mapped[str | None] = mapped_column(String(2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
