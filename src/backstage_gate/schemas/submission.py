"""Submission-related Pydantic schemas."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from backstage_gate.models.gate import GateStep
from backstage_gate.models.submission import StepStatus, Submission, SubmissionState

from .common import Attribution


class SubmissionCreate(BaseModel):
    """Visitor submission for a gate."""

    email: str = Field(..., max_length=255)
    display_name: str | None = Field(None, max_length=255)
    consent: bool | dict[str, bool] = Field(
        ...,
        description="A single boolean, or a brand -> accepted mapping in per-brand mode",
    )
    session_id: str | None = Field(None, max_length=255)
    attribution: Attribution = Field(default_factory=Attribution)


class SubmissionCreated(BaseModel):
    submission_id: int
    required_steps: list[GateStep]


class SubmissionStatusResponse(BaseModel):
    submission_id: int
    state: SubmissionState
    steps: dict[GateStep, StepStatus]


class SubmissionOwnerView(BaseModel):
    """A submission as the gate owner sees it in the submission list."""

    id: int
    email: str
    display_name: str | None
    consent: dict[str, Any]
    state: SubmissionState
    steps: dict[GateStep, StepStatus]
    credential_issued_at: datetime | None
    download_completed: bool
    download_completed_at: datetime | None
    created_at: datetime

    @classmethod
    def from_submission(
        cls, submission: Submission, required: frozenset[GateStep]
    ) -> SubmissionOwnerView:
        return cls(
            id=submission.id,
            email=submission.email,
            display_name=submission.display_name,
            consent=submission.consent or {},
            state=submission.state(required),
            steps=submission.step_statuses(required),
            credential_issued_at=submission.credential_issued_at,
            download_completed=submission.download_completed,
            download_completed_at=submission.download_completed_at,
            created_at=submission.created_at,
        )


class SubmissionPage(BaseModel):
    items: list[SubmissionOwnerView]
    total: int
    next_before: int | None = Field(
        None, description="Pass as ``before`` to fetch the next page; null on the last page"
    )
