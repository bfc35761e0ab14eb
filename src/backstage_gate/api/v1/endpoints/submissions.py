# src/backstage_gate/api/v1/endpoints/submissions.py
"""Submission status and credential issue endpoints."""

from fastapi import APIRouter, status

from backstage_gate.api.v1.dependencies import OrchestratorDep
from backstage_gate.schemas.credential import CredentialResponse
from backstage_gate.schemas.submission import SubmissionStatusResponse

router = APIRouter(prefix="/submissions", tags=["submissions"])


@router.get("/{submission_id}/status", response_model=SubmissionStatusResponse)
async def submission_status(
    submission_id: int,
    orchestrator: OrchestratorDep,
) -> SubmissionStatusResponse:
    """Poll where a submission stands in the unlock funnel."""
    result = await orchestrator.submission_status(submission_id)
    return SubmissionStatusResponse(
        submission_id=result.submission_id,
        state=result.state,
        steps=result.steps,
    )


@router.post(
    "/{submission_id}/credential",
    response_model=CredentialResponse,
    status_code=status.HTTP_201_CREATED,
)
async def issue_credential(
    submission_id: int,
    orchestrator: OrchestratorDep,
) -> CredentialResponse:
    """Issue a single-use download token once every required step is verified."""
    result = await orchestrator.issue_download_credential(submission_id)
    return CredentialResponse(token=result.token, expires_at=result.expires_at)
