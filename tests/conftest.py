# tests/conftest.py
from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Generator, Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from backstage_gate.api.v1.dependencies import (
    get_clock,
    get_collaborators,
    get_dispatcher,
    get_session_factory,
)
from backstage_gate.core.security import create_access_token
from backstage_gate.core.settings import Settings
from backstage_gate.db.session import build_engine, create_tables
from backstage_gate.db.session import get_db as app_get_session
from backstage_gate.main import app as fastapi_app
from backstage_gate.models import Gate, GateStep
from backstage_gate.repositories.credential_repo import CredentialRepository
from backstage_gate.repositories.gate_repo import GateRepository
from backstage_gate.repositories.handshake_repo import HandshakeRepository
from backstage_gate.repositories.submission_repo import SubmissionRepository
from backstage_gate.schemas.gate import GateCreate
from backstage_gate.services.analytics import FunnelAnalytics
from backstage_gate.services.background import BackgroundDispatcher
from backstage_gate.services.collaborators import (
    AuthorizationRequest,
    Collaborators,
    ProviderRegistry,
    SendResult,
    StaticFileResolver,
)
from backstage_gate.services.consent_ledger import ConsentLedger
from backstage_gate.services.consent_policy import ConsentPolicy
from backstage_gate.services.orchestrator import VerificationOrchestrator

OWNER_ID = 42
START = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    """Controllable clock handed to every service under test."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeProvider:
    """Provider verifier that records calls and answers with a configurable verdict."""

    def __init__(self) -> None:
        self.verdict = True
        self.error: Exception | None = None
        self.delay = 0.0
        self.authorizations: list[AuthorizationRequest] = []
        self.proofs: list[tuple[str, GateStep, str | None]] = []

    async def initiate_authorization(self, request: AuthorizationRequest) -> str:
        self.authorizations.append(request)
        return f"https://provider.test/authorize?state={request.state}"

    async def check_proof(
        self, access_grant: str, action: GateStep, code_verifier: str | None
    ) -> bool:
        self.proofs.append((access_grant, action, code_verifier))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.verdict


@dataclass
class RecordingEmailSender:
    fail: bool = False
    sent: list[tuple[str, str, str]] = field(default_factory=list)

    async def send(self, to: str, subject: str, body: str) -> SendResult:
        if self.fail:
            raise ConnectionError("mail relay unavailable")
        self.sent.append((to, subject, body))
        return SendResult(success=True, message_id=f"msg-{len(self.sent)}")


@pytest.fixture()
def engine(tmp_path: Path) -> Generator[Engine, None, None]:
    # File-backed so concurrent sessions on separate connections really contend.
    engine = build_engine(f"sqlite:///{tmp_path / 'gate.db'}")
    create_tables(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(
        HANDSHAKE_TTL_SECONDS=600,
        CREDENTIAL_TTL_SECONDS=86_400,
        COLLABORATOR_TIMEOUT_SECONDS=0.5,
        PUBLIC_BASE_URL="https://gate.test",
    )


@pytest.fixture()
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture()
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture()
def collaborators(provider: FakeProvider, email_sender: RecordingEmailSender) -> Collaborators:
    return Collaborators(
        providers=ProviderRegistry({"soundcloud": provider}),
        email_sender=email_sender,
        file_resolver=StaticFileResolver("https://files.test"),
    )


@pytest.fixture()
def dispatcher() -> BackgroundDispatcher:
    return BackgroundDispatcher(timeout=5.0)


@pytest.fixture()
def consent_policy() -> ConsentPolicy:
    return ConsentPolicy(["artist"])


@pytest.fixture()
def make_orchestrator(
    session_factory: sessionmaker[Session],
    collaborators: Collaborators,
    consent_policy: ConsentPolicy,
    test_settings: Settings,
    clock: FakeClock,
) -> Callable[..., VerificationOrchestrator]:
    """Build an orchestrator bound to ``session``; each thread in a race gets its own."""

    def _make(
        session: Session, dispatcher: BackgroundDispatcher | None = None
    ) -> VerificationOrchestrator:
        dispatcher = dispatcher or BackgroundDispatcher(timeout=5.0)
        return VerificationOrchestrator(
            session,
            gates=GateRepository(session),
            submissions=SubmissionRepository(session),
            handshakes=HandshakeRepository(session),
            credentials=CredentialRepository(session),
            ledger=ConsentLedger(session, clock=clock),
            analytics=FunnelAnalytics(session_factory, dispatcher, clock=clock),
            policy=consent_policy,
            providers=collaborators.providers,
            email_sender=collaborators.email_sender,
            file_resolver=collaborators.file_resolver,
            dispatcher=dispatcher,
            config=test_settings,
            clock=clock,
        )

    return _make


@pytest_asyncio.fixture()
async def orchestrator(
    make_orchestrator: Callable[..., VerificationOrchestrator],
    db_session: Session,
    dispatcher: BackgroundDispatcher,
) -> AsyncIterator[VerificationOrchestrator]:
    yield make_orchestrator(db_session, dispatcher)
    # Let analytics writes and emails finish before the database goes away.
    await dispatcher.drain()


@pytest.fixture()
def gate_factory(db_session: Session) -> Callable[..., Gate]:
    def _create(
        slug: str = "night-drive",
        required_steps: list[GateStep] | None = None,
        **overrides: Any,
    ) -> Gate:
        gate_data = GateCreate(
            slug=slug,
            title=overrides.pop("title", "Night Drive (Extended Mix)"),
            artist_name=overrides.pop("artist_name", "Nova"),
            file_reference=overrides.pop("file_reference", "releases/night-drive.wav"),
            required_steps=[GateStep.SOCIAL_REPOST] if required_steps is None else required_steps,
            **overrides,
        )
        gate = GateRepository(db_session).create(OWNER_ID, gate_data)
        db_session.commit()
        return gate

    return _create


@pytest.fixture()
def app(
    session_factory: sessionmaker[Session],
    clock: FakeClock,
    collaborators: Collaborators,
    dispatcher: BackgroundDispatcher,
) -> Iterator[FastAPI]:
    def _get_session_override() -> Generator[Session, None, None]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    fastapi_app.dependency_overrides[app_get_session] = _get_session_override
    fastapi_app.dependency_overrides[get_session_factory] = lambda: session_factory
    fastapi_app.dependency_overrides[get_clock] = lambda: clock
    fastapi_app.dependency_overrides[get_collaborators] = lambda: collaborators
    fastapi_app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    try:
        yield fastapi_app
    finally:
        fastapi_app.dependency_overrides.clear()


@pytest.fixture()
def client(app: FastAPI, dispatcher: BackgroundDispatcher) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client
        test_client.portal.call(dispatcher.drain)


@pytest.fixture()
def owner_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(OWNER_ID)}"}
