"""Data access helpers for handshake tokens."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from backstage_gate.models.handshake import HandshakeToken

__all__ = ["HandshakeRepository"]


class HandshakeRepository:
    """Issue, look up and atomically consume handshake tokens."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def create(
        self,
        *,
        value_hash: str,
        submission_id: int,
        gate_id: int,
        provider: str,
        action: str,
        code_verifier: str | None,
        expires_at: datetime,
    ) -> HandshakeToken:
        token = HandshakeToken(
            value_hash=value_hash,
            submission_id=submission_id,
            gate_id=gate_id,
            provider=provider,
            action=action,
            code_verifier=code_verifier,
            used=False,
            expires_at=expires_at,
        )
        self.session.add(token)
        self.session.flush()
        return token

    def find_by_hash(self, value_hash: str) -> HandshakeToken | None:
        result = self.session.execute(
            select(HandshakeToken)
            .where(HandshakeToken.value_hash == value_hash)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    def claim(self, token_id: int) -> bool:
        """Flip ``used`` from false to true in a single statement.

        Returns:
            True for exactly one caller per token, False for every other caller.
        """
        result = self.session.execute(
            update(HandshakeToken)
            .where(HandshakeToken.id == token_id, HandshakeToken.used.is_(False))
            .values(used=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def delete_expired(self, now: datetime) -> int:
        """Remove tokens past their expiry; cleanup only, never needed for correctness."""
        result = self.session.execute(
            delete(HandshakeToken)
            .where(HandshakeToken.expires_at < now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
