# src/backstage_gate/api/v1/endpoints/gates.py
"""Gate endpoints: public gate pages, visitor submissions and owner management."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Query, Request, status
from sqlalchemy.orm import Session

from backstage_gate.api.v1.dependencies import (
    AnalyticsDep,
    ClockDep,
    OrchestratorDep,
    OwnerDep,
    SessionDep,
)
from backstage_gate.core.errors import ForbiddenError, GateNotFoundError, ValidationError
from backstage_gate.db.time import as_utc
from backstage_gate.models.gate import Gate, ordered_steps
from backstage_gate.repositories.gate_repo import GateRepository
from backstage_gate.repositories.submission_repo import SubmissionRepository
from backstage_gate.schemas.analytics import FunnelReport
from backstage_gate.schemas.gate import (
    GateCreate,
    GateOwnerView,
    GatePublic,
    GateUpdate,
    GateViewQuery,
)
from backstage_gate.schemas.submission import (
    SubmissionCreate,
    SubmissionCreated,
    SubmissionOwnerView,
    SubmissionPage,
)

router = APIRouter(prefix="/gates", tags=["gates"])


def _get_owned_gate_or_404(db: Session, slug: str, owner_id: int) -> Gate:
    gate = GateRepository(db).get_by_slug(slug)
    if gate is None:
        raise GateNotFoundError(details={"slug": slug})
    if gate.owner_id != owner_id:
        raise ForbiddenError("You do not own this gate")
    return gate


@router.post("", response_model=GateOwnerView, status_code=status.HTTP_201_CREATED)
async def create_gate(
    gate_data: GateCreate,
    owner_id: OwnerDep,
    db: SessionDep,
) -> Gate:
    """Create a new download gate owned by the caller."""
    gate = GateRepository(db).create(owner_id, gate_data)
    db.commit()
    return gate


@router.get("", response_model=list[GateOwnerView])
async def list_gates(
    owner_id: OwnerDep,
    db: SessionDep,
) -> list[Gate]:
    """List the caller's gates, inactive ones included, newest first."""
    return GateRepository(db).list_for_owner(owner_id)


@router.get("/{slug}", response_model=GatePublic)
async def view_gate(
    slug: str,
    query: Annotated[GateViewQuery, Query()],
    orchestrator: OrchestratorDep,
    clock: ClockDep,
) -> GatePublic:
    """Return the public gate page and count the view."""
    gate = await orchestrator.view_gate(slug, session_id=query.session_id, attribution=query)
    return GatePublic(
        slug=gate.slug,
        title=gate.title,
        artist_name=gate.artist_name,
        required_steps=ordered_steps(gate.steps),
        submittable=gate.is_submittable(clock()),
    )


@router.post(
    "/{slug}/submissions",
    response_model=SubmissionCreated,
    status_code=status.HTTP_201_CREATED,
)
async def submit(
    slug: str,
    submission_data: SubmissionCreate,
    request: Request,
    orchestrator: OrchestratorDep,
) -> SubmissionCreated:
    """Capture a visitor's email and consent for a gate."""
    result = await orchestrator.submit(
        slug,
        submission_data.email,
        submission_data.consent,
        display_name=submission_data.display_name,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        session_id=submission_data.session_id,
        attribution=submission_data.attribution,
    )
    return SubmissionCreated(
        submission_id=result.submission_id,
        required_steps=result.required_steps,
    )


@router.patch("/{slug}", response_model=GateOwnerView)
async def update_gate(
    slug: str,
    gate_update: GateUpdate,
    owner_id: OwnerDep,
    db: SessionDep,
    clock: ClockDep,
) -> Gate:
    """Change a gate's title, expiry, download ceiling or active flag."""
    gate = _get_owned_gate_or_404(db, slug, owner_id)
    changes = gate_update.changes()
    expires_at = changes.get("expires_at")
    if expires_at is not None and as_utc(expires_at) <= clock():
        raise ValidationError(
            "Expiry must be in the future",
            details={"field": "expires_at"},
        )
    GateRepository(db).update(gate, changes)
    db.commit()
    return gate


@router.get("/{slug}/submissions", response_model=SubmissionPage)
async def list_submissions(
    slug: str,
    owner_id: OwnerDep,
    db: SessionDep,
    limit: int = Query(50, ge=1, le=100),
    before: int | None = Query(None),
) -> SubmissionPage:
    """Page through a gate's submissions with their verification progress."""
    gate = _get_owned_gate_or_404(db, slug, owner_id)
    submissions = SubmissionRepository(db)
    rows = submissions.list_for_gate(gate.id, limit=limit, before=before)
    required = gate.steps
    return SubmissionPage(
        items=[SubmissionOwnerView.from_submission(row, required) for row in rows],
        total=submissions.count_for_gate(gate.id),
        next_before=rows[-1].id if len(rows) == limit else None,
    )


@router.post("/{slug}/deactivate", response_model=GateOwnerView)
async def deactivate_gate(
    slug: str,
    owner_id: OwnerDep,
    db: SessionDep,
) -> Gate:
    """Stop a gate from accepting new submissions and credentials."""
    gate = _get_owned_gate_or_404(db, slug, owner_id)
    GateRepository(db).set_active(gate, False)
    db.commit()
    return gate


@router.get("/{slug}/funnel", response_model=FunnelReport)
async def gate_funnel(
    slug: str,
    owner_id: OwnerDep,
    db: SessionDep,
    analytics: AnalyticsDep,
    since: datetime | None = None,
    until: datetime | None = None,
) -> FunnelReport:
    """Return view -> submit -> verify -> download conversion for a gate."""
    gate = _get_owned_gate_or_404(db, slug, owner_id)
    return analytics.funnel(gate.id, since, until)
