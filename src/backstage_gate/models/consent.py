# src/backstage_gate/models/consent.py
"""Append-only consent ledger model."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from backstage_gate.db.session import Base
from backstage_gate.db.time import utcnow


class ConsentAction(enum.StrEnum):
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    RESUBSCRIBE = "resubscribe"
    DECLINE = "decline"
    BOUNCE = "bounce"
    SPAM_COMPLAINT = "spam_complaint"
    DELETE_REQUEST = "delete_request"


class ConsentSource(enum.StrEnum):
    DOWNLOAD_GATE = "download_gate"
    EMAIL_LINK = "email_link"
    API_REQUEST = "api_request"
    ADMIN_ACTION = "admin_action"
    WEBHOOK_BOUNCE = "webhook_bounce"
    MANUAL_IMPORT = "manual_import"


class ConsentEvent(Base):
    """Immutable record of a consent-affecting event for one contact."""

    __tablename__ = "consent_event"
    __table_args__ = (Index("ix_consent_event_contact_ts", "contact_id", "timestamp"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    contact_id: Mapped[str] = mapped_column(String(320), nullable=False)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Column is named ``metadata`` in the database; the attribute avoids
    # shadowing DeclarativeBase.metadata.
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)


class LedgerImmutableError(RuntimeError):
    """Raised when code attempts to modify or delete a ledger entry."""


@event.listens_for(ConsentEvent, "before_update")
def _reject_update(mapper, connection, target) -> None:  # noqa: ANN001
    raise LedgerImmutableError("consent ledger entries cannot be modified")


@event.listens_for(ConsentEvent, "before_delete")
def _reject_delete(mapper, connection, target) -> None:  # noqa: ANN001
    raise LedgerImmutableError("consent ledger entries cannot be deleted")
