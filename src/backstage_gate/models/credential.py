# src/backstage_gate/models/credential.py
"""Model for single-use download credentials."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from backstage_gate.db.session import Base
from backstage_gate.db.time import utcnow


class DownloadCredential(Base):
    """Time-limited grant to download a gate's file exactly once."""

    __tablename__ = "download_credential"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    submission_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("submission.id"),
        nullable=False,
        index=True,
    )
    gate_id: Mapped[int] = mapped_column(Integer, ForeignKey("gate.id"), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
