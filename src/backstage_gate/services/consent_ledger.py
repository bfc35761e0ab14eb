"""Append-only consent ledger service."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, Literal

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from backstage_gate.core.errors import ValidationError
from backstage_gate.db.time import utcnow
from backstage_gate.models.consent import ConsentAction, ConsentEvent, ConsentSource
from backstage_gate.repositories.consent_repo import ConsentRepository
from backstage_gate.schemas.consent import ConsentEntry, parse_metadata

logger = logging.getLogger(__name__)

# Actions that leave the contact subscribed / not subscribed. Soft bounces
# are informational and do not change the status.
_OPTING_IN = frozenset({ConsentAction.SUBSCRIBE, ConsentAction.RESUBSCRIBE})
_OPTING_OUT = frozenset(
    {
        ConsentAction.UNSUBSCRIBE,
        ConsentAction.DECLINE,
        ConsentAction.SPAM_COMPLAINT,
        ConsentAction.DELETE_REQUEST,
    }
)


def normalize_contact_id(value: str) -> str:
    """Contacts are keyed by their lower-cased, trimmed email address."""
    return value.strip().lower()


class ConsentLedger:
    """Record and read consent events for a contact.

    No business rule ever rejects an event; only malformed metadata or a
    storage failure can make ``record`` fail.
    """

    def __init__(
        self, session: Session, clock: Callable[[], datetime] = utcnow
    ) -> None:
        self.session = session
        self.repo = ConsentRepository(session)
        self.clock = clock

    def record(self, entry: ConsentEntry, *, commit: bool = True) -> ConsentEvent:
        """Append ``entry`` to the ledger.

        Args:
            entry: Event to append; its metadata is validated against the
                variant for its action.
            commit: Commit immediately. Callers that fold the append into a
                larger transaction pass ``False``.

        Raises:
            ValidationError: If the metadata does not match its action.
        """
        try:
            metadata = parse_metadata(entry.action, entry.metadata)
        except PydanticValidationError as exc:
            raise ValidationError(
                "Invalid consent metadata",
                details={
                    "errors": [
                        {"loc": [str(part) for part in err["loc"]], "msg": err["msg"]}
                        for err in exc.errors()
                    ]
                },
            ) from exc

        event = ConsentEvent(
            contact_id=normalize_contact_id(entry.contact_id),
            action=entry.action.value,
            source=entry.source.value,
            timestamp=entry.timestamp or self.clock(),
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
            metadata_=metadata.model_dump(mode="json", exclude={"action"}, exclude_none=True),
        )
        self.repo.append(event)
        if commit:
            self.session.commit()
        logger.info("Consent %s recorded for contact %s", event.action, event.contact_id)
        return event

    def timeline_for(self, contact_id: str) -> list[ConsentEvent]:
        """Return every event for the contact, oldest first."""
        return self.repo.timeline(normalize_contact_id(contact_id))

    def current_status(self, contact_id: str) -> bool | None:
        """Return whether the contact is currently subscribed.

        ``None`` means nothing in the ledger has decided it yet.
        """
        for event in reversed(self.timeline_for(contact_id)):
            action = ConsentAction(event.action)
            if action in _OPTING_IN:
                return True
            if action in _OPTING_OUT:
                return False
            bounce_type = (event.metadata_ or {}).get("bounce_type")
            if action is ConsentAction.BOUNCE and bounce_type == "hard":
                return False
        return None

    def subscribe(
        self,
        contact_id: str,
        *,
        source: ConsentSource = ConsentSource.DOWNLOAD_GATE,
        metadata: dict[str, Any] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        commit: bool = True,
    ) -> ConsentEvent:
        return self.record(
            ConsentEntry(
                contact_id=contact_id,
                action=ConsentAction.SUBSCRIBE,
                source=source,
                ip_address=ip_address,
                user_agent=user_agent,
                metadata=metadata,
            ),
            commit=commit,
        )

    def unsubscribe(
        self,
        contact_id: str,
        reason: str | None = None,
        *,
        source: ConsentSource = ConsentSource.EMAIL_LINK,
        campaign_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> ConsentEvent:
        return self.record(
            ConsentEntry(
                contact_id=contact_id,
                action=ConsentAction.UNSUBSCRIBE,
                source=source,
                ip_address=ip_address,
                user_agent=user_agent,
                metadata={"reason": reason, "campaign_id": campaign_id},
            )
        )

    def resubscribe(
        self,
        contact_id: str,
        *,
        source: ConsentSource = ConsentSource.EMAIL_LINK,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> ConsentEvent:
        return self.record(
            ConsentEntry(
                contact_id=contact_id,
                action=ConsentAction.RESUBSCRIBE,
                source=source,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )

    def bounce(
        self,
        contact_id: str,
        bounce_type: Literal["hard", "soft"],
        reason: str | None = None,
    ) -> ConsentEvent:
        return self.record(
            ConsentEntry(
                contact_id=contact_id,
                action=ConsentAction.BOUNCE,
                source=ConsentSource.WEBHOOK_BOUNCE,
                metadata={"bounce_type": bounce_type, "reason": reason},
            )
        )


__all__ = ["ConsentLedger", "normalize_contact_id"]
