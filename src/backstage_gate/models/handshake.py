# src/backstage_gate/models/handshake.py
"""Model for CSRF handshake tokens used during provider round-trips."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from backstage_gate.db.session import Base
from backstage_gate.db.time import utcnow


class HandshakeToken(Base):
    """Single-use, short-lived state value bound to (submission, provider, action)."""

    __tablename__ = "handshake_token"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # SHA-256 of the value handed to the provider as ``state``.
    value_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    submission_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("submission.id"),
        nullable=False,
        index=True,
    )
    gate_id: Mapped[int] = mapped_column(Integer, ForeignKey("gate.id"), nullable=False)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    # PKCE verifier, only ever sent to the provider collaborator.
    code_verifier: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # Flipped false -> true exactly once by a conditional UPDATE.
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
