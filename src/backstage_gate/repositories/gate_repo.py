"""Data access helpers for gate definitions."""
from __future__ import annotations

from typing import Any

from sqlalchemy import desc, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backstage_gate.core.errors import DuplicateSlugError
from backstage_gate.db.time import as_utc
from backstage_gate.models.gate import Gate
from backstage_gate.schemas.gate import GateCreate

__all__ = ["GateRepository"]


class GateRepository:
    """Thin wrapper around database access for gate entities."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def get_by_id(self, gate_id: int) -> Gate | None:
        return self.session.get(Gate, gate_id, populate_existing=True)

    def get_by_slug(self, slug: str) -> Gate | None:
        result = self.session.execute(
            select(Gate).where(Gate.slug == slug).execution_options(populate_existing=True)
        )
        return result.scalars().first()

    def create(self, owner_id: int, gate_data: GateCreate) -> Gate:
        """Insert a gate from validated owner input.

        Raises:
            DuplicateSlugError: If another gate already uses the slug.
        """
        gate = Gate(
            owner_id=owner_id,
            slug=gate_data.slug,
            title=gate_data.title,
            artist_name=gate_data.artist_name,
            file_reference=gate_data.file_reference,
            required_steps=[step.value for step in gate_data.required_steps],
            active=gate_data.active,
            expires_at=as_utc(gate_data.expires_at) if gate_data.expires_at else None,
            max_downloads=gate_data.max_downloads,
            downloads_issued=0,
        )
        self.session.add(gate)
        try:
            self.session.flush()
        except IntegrityError as err:
            self.session.rollback()
            raise DuplicateSlugError(details={"slug": gate_data.slug}) from err
        return gate

    def list_for_owner(self, owner_id: int) -> list[Gate]:
        """Return every gate of ``owner_id``, inactive ones included, newest first."""
        result = self.session.execute(
            select(Gate)
            .where(Gate.owner_id == owner_id)
            .order_by(desc(Gate.created_at), desc(Gate.id))
        )
        return list(result.scalars().all())

    def update(self, gate: Gate, changes: dict[str, Any]) -> Gate:
        for name, value in changes.items():
            if name == "expires_at" and value is not None:
                value = as_utc(value)
            setattr(gate, name, value)
        self.session.flush()
        return gate

    def set_active(self, gate: Gate, active: bool) -> Gate:
        gate.active = active
        self.session.flush()
        return gate

    def increment_downloads(self, gate_id: int) -> bool:
        """Atomically bump the download counter unless the ceiling is reached.

        Returns:
            True if the counter was incremented, False if ``max_downloads`` was hit.
        """
        result = self.session.execute(
            update(Gate)
            .where(
                Gate.id == gate_id,
                or_(Gate.max_downloads.is_(None), Gate.downloads_issued < Gate.max_downloads),
            )
            .values(downloads_issued=Gate.downloads_issued + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
