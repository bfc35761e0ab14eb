# src/backstage_gate/api/v1/endpoints/consent.py
"""Consent ledger endpoints for gate owners."""

from typing import Annotated

from fastapi import APIRouter, Path, Request, status

from backstage_gate.api.v1.dependencies import LedgerDep, OwnerDep
from backstage_gate.schemas.consent import (
    MAX_CONTACT_ID_LENGTH,
    ConsentEntry,
    ConsentEventCreate,
    ConsentEventResponse,
    ConsentTimelineResponse,
)
from backstage_gate.services.consent_ledger import normalize_contact_id

router = APIRouter(prefix="/consent", tags=["consent"])

ContactId = Annotated[str, Path(min_length=1, max_length=MAX_CONTACT_ID_LENGTH)]


@router.get("/{contact_id}/timeline", response_model=ConsentTimelineResponse)
async def consent_timeline(
    contact_id: ContactId,
    owner_id: OwnerDep,
    ledger: LedgerDep,
) -> ConsentTimelineResponse:
    """Return every consent event for a contact, oldest first."""
    events = ledger.timeline_for(contact_id)
    return ConsentTimelineResponse(
        contact_id=normalize_contact_id(contact_id),
        subscribed=ledger.current_status(contact_id),
        events=[ConsentEventResponse.model_validate(event) for event in events],
    )


@router.post(
    "/{contact_id}/events",
    response_model=ConsentEventResponse,
    status_code=status.HTTP_201_CREATED,
)
async def record_consent_event(
    contact_id: ContactId,
    payload: ConsentEventCreate,
    request: Request,
    owner_id: OwnerDep,
    ledger: LedgerDep,
) -> ConsentEventResponse:
    """Append an unsubscribe, resubscribe, bounce or other consent event."""
    event = ledger.record(
        ConsentEntry(
            contact_id=contact_id,
            action=payload.action,
            source=payload.source,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
            metadata=payload.metadata,
        )
    )
    return ConsentEventResponse.model_validate(event)
