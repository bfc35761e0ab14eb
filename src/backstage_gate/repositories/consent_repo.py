"""Append-only persistence for the consent ledger."""
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from backstage_gate.models.consent import ConsentEvent

__all__ = ["ConsentRepository"]


class ConsentRepository:
    """Insert and read consent events. There is deliberately no update or delete."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def append(self, event: ConsentEvent) -> ConsentEvent:
        self.session.add(event)
        self.session.flush()
        return event

    def timeline(self, contact_id: str) -> list[ConsentEvent]:
        result = self.session.execute(
            select(ConsentEvent)
            .where(ConsentEvent.contact_id == contact_id)
            .order_by(ConsentEvent.timestamp.asc(), ConsentEvent.id.asc())
        )
        return list(result.scalars())
