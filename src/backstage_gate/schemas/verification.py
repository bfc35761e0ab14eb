"""Schemas for the third-party verification round-trip."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from backstage_gate.models.gate import GateStep


class VerificationBegin(BaseModel):
    submission_id: int
    provider: str = Field(..., min_length=1, max_length=50)
    action: GateStep


class VerificationBeginResponse(BaseModel):
    handshake_value: str
    redirect_url: str
    expires_at: datetime


class VerificationCallback(BaseModel):
    handshake_value: str = Field(..., min_length=1, max_length=255)
    provider_proof: str = Field(
        ..., min_length=1, description="Access grant returned by the provider"
    )


class VerificationCallbackResponse(BaseModel):
    verified: bool
