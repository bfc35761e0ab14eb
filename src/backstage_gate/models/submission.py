# src/backstage_gate/models/submission.py
"""SQLAlchemy model for a visitor's progress through a gate."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from backstage_gate.db.session import Base
from backstage_gate.db.time import utcnow
from backstage_gate.models.gate import GateStep, ordered_steps


class SubmissionState(enum.StrEnum):
    """Derived position of a submission in the unlock state machine."""

    NEW = "new"
    EMAIL_CAPTURED = "email_captured"
    ALL_VERIFIED = "all_verified"
    CREDENTIAL_ISSUED = "credential_issued"
    REDEEMED = "redeemed"


class StepStatus(enum.StrEnum):
    PENDING = "pending"
    VERIFIED = "verified"


# Step -> (verified flag column, verified-at column).
STEP_COLUMNS: dict[GateStep, tuple[str, str]] = {
    GateStep.SOCIAL_REPOST: ("social_repost_verified", "social_repost_verified_at"),
    GateStep.SOCIAL_FOLLOW: ("social_follow_verified", "social_follow_verified_at"),
    GateStep.STREAMING_CONNECT: ("streaming_connect_verified", "streaming_connect_verified_at"),
    GateStep.SECOND_SOCIAL_FOLLOW: (
        "second_social_follow_verified",
        "second_social_follow_verified_at",
    ),
}


class Submission(Base):
    """One visitor's attempt to unlock a gate.

    Rows are never deleted; they remain as the historical record of the funnel.
    """

    __tablename__ = "submission"
    __table_args__ = (
        # The only guard against duplicate submissions; inserts rely on it atomically.
        UniqueConstraint("gate_id", "email", name="uq_submission_gate_email"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    gate_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("gate.id"),
        nullable=False,
        index=True,
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Snapshot of the brands accepted at submission time.
    consent: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)

    social_repost_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    social_repost_verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    social_follow_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    social_follow_verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    streaming_connect_verified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    streaming_connect_verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    second_social_follow_verified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    second_social_follow_verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    credential_issued_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    download_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    download_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def is_step_verified(self, step: GateStep) -> bool:
        """Return True if ``step`` has been verified; email is verified on capture."""
        if step is GateStep.EMAIL:
            return True
        flag, _ = STEP_COLUMNS[step]
        return bool(getattr(self, flag))

    def step_statuses(self, required: frozenset[GateStep]) -> dict[GateStep, StepStatus]:
        return {
            step: StepStatus.VERIFIED if self.is_step_verified(step) else StepStatus.PENDING
            for step in ordered_steps(required)
        }

    def missing_steps(self, required: frozenset[GateStep]) -> list[GateStep]:
        return [step for step in ordered_steps(required) if not self.is_step_verified(step)]

    def state(self, required: frozenset[GateStep]) -> SubmissionState:
        """Return the derived state machine position for this submission."""
        if self.download_completed:
            return SubmissionState.REDEEMED
        if self.credential_issued_at is not None:
            return SubmissionState.CREDENTIAL_ISSUED
        if not self.missing_steps(required):
            return SubmissionState.ALL_VERIFIED
        return SubmissionState.EMAIL_CAPTURED
