"""Download credential schemas."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class CredentialResponse(BaseModel):
    token: str
    expires_at: datetime


class RedeemResponse(BaseModel):
    file_reference: str
    download_url: str
