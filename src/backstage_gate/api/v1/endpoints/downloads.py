# src/backstage_gate/api/v1/endpoints/downloads.py
"""Download credential redemption."""

from fastapi import APIRouter

from backstage_gate.api.v1.dependencies import OrchestratorDep
from backstage_gate.schemas.credential import RedeemResponse

router = APIRouter(prefix="/downloads", tags=["downloads"])


@router.post("/{token}", response_model=RedeemResponse)
async def redeem(token: str, orchestrator: OrchestratorDep) -> RedeemResponse:
    """Consume a download token and return the file location."""
    result = await orchestrator.redeem_credential(token)
    return RedeemResponse(file_reference=result.file_reference, download_url=result.download_url)
