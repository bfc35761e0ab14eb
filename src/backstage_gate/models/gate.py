# src/backstage_gate/models/gate.py
"""SQLAlchemy model for gate definitions and the verification step catalogue."""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backstage_gate.db.session import Base
from backstage_gate.db.time import as_utc, utcnow


class GateStep(enum.StrEnum):
    """Verification steps a gate can require, in canonical funnel order."""

    EMAIL = "email"
    SOCIAL_REPOST = "social_repost"
    SOCIAL_FOLLOW = "social_follow"
    STREAMING_CONNECT = "streaming_connect"
    SECOND_SOCIAL_FOLLOW = "second_social_follow"


STEP_ORDER: tuple[GateStep, ...] = tuple(GateStep)

# Steps that require a third-party round-trip; email is captured at submission.
VERIFIABLE_STEPS: frozenset[GateStep] = frozenset(STEP_ORDER) - {GateStep.EMAIL}


def ordered_steps(steps: set[GateStep] | frozenset[GateStep]) -> list[GateStep]:
    """Return ``steps`` sorted by funnel order."""
    return [step for step in STEP_ORDER if step in steps]


class Gate(Base):
    """Configured unlock funnel tied to one downloadable file."""

    __tablename__ = "gate"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    slug: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    artist_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    file_reference: Mapped[str] = mapped_column(Text, nullable=False)

    # Stored as a list of GateStep values; email is always present.
    required_steps: Mapped[list[str]] = mapped_column(JSON, nullable=False)

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # NULL = unlimited.
    max_downloads: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Only ever incremented by a successful credential redemption.
    downloads_issued: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    @property
    def steps(self) -> frozenset[GateStep]:
        """Return the required steps as enum members."""
        return frozenset(GateStep(value) for value in self.required_steps)

    @property
    def verification_steps(self) -> list[GateStep]:
        """Return required steps other than email, in funnel order."""
        return ordered_steps(self.steps & VERIFIABLE_STEPS)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and as_utc(now) >= as_utc(self.expires_at)

    def downloads_exhausted(self) -> bool:
        return self.max_downloads is not None and self.downloads_issued >= self.max_downloads

    def is_submittable(self, now: datetime) -> bool:
        """Return True when the gate accepts submissions and downloads at ``now``."""
        return self.active and not self.is_expired(now) and not self.downloads_exhausted()
