"""Shared API dependencies: authentication and the service composition root."""

from collections.abc import Callable
from datetime import datetime
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session, sessionmaker

from backstage_gate.core.settings import settings
from backstage_gate.db.session import SessionLocal, get_db
from backstage_gate.db.time import utcnow
from backstage_gate.repositories.credential_repo import CredentialRepository
from backstage_gate.repositories.gate_repo import GateRepository
from backstage_gate.repositories.handshake_repo import HandshakeRepository
from backstage_gate.repositories.submission_repo import SubmissionRepository
from backstage_gate.services.analytics import FunnelAnalytics
from backstage_gate.services.background import BackgroundDispatcher
from backstage_gate.services.collaborators import Collaborators
from backstage_gate.services.consent_ledger import ConsentLedger
from backstage_gate.services.consent_policy import ConsentPolicy
from backstage_gate.services.orchestrator import VerificationOrchestrator

# HTTP Bearer scheme for owner JWT authentication
bearer_scheme = HTTPBearer()

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_current_owner(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
) -> int:
    """Return the owner id carried in the bearer token.

    Raises:
        HTTPException: If the token is invalid or carries no usable subject
    """
    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from err

    subject = payload.get("sub")
    try:
        return int(subject)
    except (TypeError, ValueError) as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from err


def get_clock() -> Callable[[], datetime]:
    return utcnow


def get_session_factory() -> sessionmaker[Session]:
    """Return the factory used for sessions that outlive a request (analytics writes)."""
    return SessionLocal


def get_collaborators(request: Request) -> Collaborators:
    return request.app.state.collaborators


def get_dispatcher(request: Request) -> BackgroundDispatcher:
    return request.app.state.dispatcher


def get_consent_policy() -> ConsentPolicy:
    return ConsentPolicy.from_settings(settings)


OwnerDep = Annotated[int, Depends(get_current_owner)]
ClockDep = Annotated[Callable[[], datetime], Depends(get_clock)]
CollaboratorsDep = Annotated[Collaborators, Depends(get_collaborators)]
DispatcherDep = Annotated[BackgroundDispatcher, Depends(get_dispatcher)]


def get_analytics(
    dispatcher: DispatcherDep,
    session_factory: Annotated[sessionmaker[Session], Depends(get_session_factory)],
    clock: ClockDep,
) -> FunnelAnalytics:
    return FunnelAnalytics(session_factory, dispatcher, clock=clock)


def get_consent_ledger(db: SessionDep, clock: ClockDep) -> ConsentLedger:
    return ConsentLedger(db, clock=clock)


AnalyticsDep = Annotated[FunnelAnalytics, Depends(get_analytics)]
LedgerDep = Annotated[ConsentLedger, Depends(get_consent_ledger)]


def get_orchestrator(
    db: SessionDep,
    collaborators: CollaboratorsDep,
    dispatcher: DispatcherDep,
    analytics: AnalyticsDep,
    ledger: LedgerDep,
    policy: Annotated[ConsentPolicy, Depends(get_consent_policy)],
    clock: ClockDep,
) -> VerificationOrchestrator:
    """Wire a request-scoped orchestrator from the session and shared collaborators."""
    return VerificationOrchestrator(
        db,
        gates=GateRepository(db),
        submissions=SubmissionRepository(db),
        handshakes=HandshakeRepository(db),
        credentials=CredentialRepository(db),
        ledger=ledger,
        analytics=analytics,
        policy=policy,
        providers=collaborators.providers,
        email_sender=collaborators.email_sender,
        file_resolver=collaborators.file_resolver,
        dispatcher=dispatcher,
        config=settings,
        clock=clock,
    )


OrchestratorDep = Annotated[VerificationOrchestrator, Depends(get_orchestrator)]
