"""Data access helpers for download credentials."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from backstage_gate.models.credential import DownloadCredential

__all__ = ["CredentialRepository"]


class CredentialRepository:
    """Issue and atomically redeem download credentials."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def create(
        self,
        *,
        token_hash: str,
        submission_id: int,
        gate_id: int,
        expires_at: datetime,
    ) -> DownloadCredential:
        credential = DownloadCredential(
            token_hash=token_hash,
            submission_id=submission_id,
            gate_id=gate_id,
            expires_at=expires_at,
            used=False,
        )
        self.session.add(credential)
        self.session.flush()
        return credential

    def find_by_hash(self, token_hash: str) -> DownloadCredential | None:
        result = self.session.execute(
            select(DownloadCredential)
            .where(DownloadCredential.token_hash == token_hash)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    def claim(self, credential_id: int, now: datetime) -> bool:
        """Mark an unexpired credential used; True for exactly one caller."""
        result = self.session.execute(
            update(DownloadCredential)
            .where(
                DownloadCredential.id == credential_id,
                DownloadCredential.used.is_(False),
                DownloadCredential.expires_at > now,
            )
            .values(used=True, used_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
