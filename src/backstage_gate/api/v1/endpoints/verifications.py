# src/backstage_gate/api/v1/endpoints/verifications.py
"""Third-party step verification endpoints."""

from fastapi import APIRouter

from backstage_gate.api.v1.dependencies import OrchestratorDep
from backstage_gate.schemas.verification import (
    VerificationBegin,
    VerificationBeginResponse,
    VerificationCallback,
    VerificationCallbackResponse,
)

router = APIRouter(prefix="/verifications", tags=["verifications"])


@router.post("", response_model=VerificationBeginResponse)
async def begin_verification(
    payload: VerificationBegin,
    orchestrator: OrchestratorDep,
) -> VerificationBeginResponse:
    """Start a provider round-trip and return where to send the visitor."""
    result = await orchestrator.begin_step_verification(
        payload.submission_id, payload.provider, payload.action
    )
    return VerificationBeginResponse(
        handshake_value=result.handshake_value,
        redirect_url=result.redirect_target,
        expires_at=result.expires_at,
    )


@router.post("/callback", response_model=VerificationCallbackResponse)
async def verification_callback(
    payload: VerificationCallback,
    orchestrator: OrchestratorDep,
) -> VerificationCallbackResponse:
    """Finish a provider round-trip and record the step if the proof checks out."""
    verified = await orchestrator.complete_step_verification(
        payload.handshake_value, payload.provider_proof
    )
    return VerificationCallbackResponse(verified=verified)
