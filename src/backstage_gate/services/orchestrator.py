# src/backstage_gate/services/orchestrator.py
"""Verification orchestrator: the gate unlock state machine.

A visitor moves through submit -> step verifications -> credential issue ->
redemption. All cross-request state lives in the database, and every
check-then-act that matters (duplicate submissions, handshake and credential
consumption, the per-gate download ceiling) is a single conditional
statement so concurrent requests cannot both win.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from backstage_gate.core.errors import (
    CredentialAlreadyUsedError,
    CredentialExpiredError,
    CsrfError,
    DownloadAlreadyCompletedError,
    ExternalServiceError,
    GateError,
    GateExpiredError,
    GateInactiveError,
    GateNotFoundError,
    HandshakeExpiredError,
    HandshakeReplayError,
    InvalidCredentialError,
    MaxDownloadsReachedError,
    StepAlreadyVerifiedError,
    SubmissionNotFoundError,
    ValidationError,
    VerificationIncompleteError,
)
from backstage_gate.core.security import (
    code_challenge_for,
    generate_code_verifier,
    generate_credential_token,
    generate_handshake_value,
    hash_token,
)
from backstage_gate.core.settings import Settings, settings
from backstage_gate.db.time import as_utc, utcnow
from backstage_gate.models.analytics import FunnelEventType
from backstage_gate.models.consent import ConsentAction, ConsentSource
from backstage_gate.models.gate import Gate, GateStep
from backstage_gate.models.submission import StepStatus, Submission, SubmissionState
from backstage_gate.repositories.credential_repo import CredentialRepository
from backstage_gate.repositories.gate_repo import GateRepository
from backstage_gate.repositories.handshake_repo import HandshakeRepository
from backstage_gate.repositories.submission_repo import SubmissionRepository
from backstage_gate.schemas.common import Attribution
from backstage_gate.schemas.consent import ConsentEntry
from backstage_gate.services.analytics import FunnelAnalytics
from backstage_gate.services.background import BackgroundDispatcher
from backstage_gate.services.collaborators import (
    AuthorizationRequest,
    EmailSender,
    FileResolver,
    ProviderRegistry,
)
from backstage_gate.services.consent_ledger import ConsentLedger
from backstage_gate.services.consent_policy import ConsentPolicy

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_EMAIL_LENGTH = 255


@dataclass(frozen=True)
class SubmitResult:
    submission_id: int
    required_steps: list[GateStep]


@dataclass(frozen=True)
class BeginResult:
    handshake_value: str
    redirect_target: str
    expires_at: datetime


@dataclass(frozen=True)
class CredentialResult:
    token: str
    expires_at: datetime


@dataclass(frozen=True)
class RedeemResult:
    file_reference: str
    download_url: str


@dataclass(frozen=True)
class SubmissionStatus:
    submission_id: int
    state: SubmissionState
    steps: dict[GateStep, StepStatus]


def normalize_email(value: str) -> str:
    """Validate and normalize a visitor email.

    Raises:
        ValidationError: If the address is empty, too long or malformed.
    """
    email = value.strip().lower()
    if not email:
        raise ValidationError("Email is required", details={"field": "email"})
    if len(email) > MAX_EMAIL_LENGTH:
        raise ValidationError(
            f"Email must be at most {MAX_EMAIL_LENGTH} characters",
            details={"field": "email"},
        )
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email format", details={"field": "email"})
    return email


def ensure_submittable(gate: Gate, now: datetime) -> None:
    """Raise the matching Forbidden error unless the gate accepts visitors at ``now``."""
    if not gate.active:
        raise GateInactiveError(details={"slug": gate.slug})
    if gate.is_expired(now):
        raise GateExpiredError(details={"slug": gate.slug})
    if gate.downloads_exhausted():
        raise MaxDownloadsReachedError(details={"slug": gate.slug})


class VerificationOrchestrator:
    """Drive a submission through the gate's unlock funnel."""

    def __init__(
        self,
        session: Session,
        *,
        gates: GateRepository,
        submissions: SubmissionRepository,
        handshakes: HandshakeRepository,
        credentials: CredentialRepository,
        ledger: ConsentLedger,
        analytics: FunnelAnalytics,
        policy: ConsentPolicy,
        providers: ProviderRegistry,
        email_sender: EmailSender,
        file_resolver: FileResolver,
        dispatcher: BackgroundDispatcher,
        config: Settings = settings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session = session
        self.gates = gates
        self.submissions = submissions
        self.handshakes = handshakes
        self.credentials = credentials
        self.ledger = ledger
        self.analytics = analytics
        self.policy = policy
        self.providers = providers
        self.email_sender = email_sender
        self.file_resolver = file_resolver
        self.dispatcher = dispatcher
        self.config = config
        self.clock = clock

    # -- lookups -----------------------------------------------------------------

    def _get_gate_by_slug(self, slug: str) -> Gate:
        gate = self.gates.get_by_slug(slug)
        if gate is None:
            raise GateNotFoundError(details={"slug": slug})
        return gate

    def _get_gate(self, gate_id: int) -> Gate:
        gate = self.gates.get_by_id(gate_id)
        if gate is None:
            raise GateNotFoundError()
        return gate

    def _get_submission(self, submission_id: int) -> Submission:
        submission = self.submissions.get_by_id(submission_id)
        if submission is None:
            raise SubmissionNotFoundError(details={"submission_id": submission_id})
        return submission

    @property
    def _collaborator_timeout(self) -> float:
        return self.config.collaborator_timeout_seconds

    def _callback_url(self) -> str:
        return self.config.public_base_url.rstrip("/") + self.config.provider_callback_path

    # -- operations --------------------------------------------------------------

    async def view_gate(
        self,
        slug: str,
        *,
        session_id: str | None = None,
        attribution: Attribution | None = None,
    ) -> Gate:
        """Return a gate for its public page and count the view."""
        gate = self._get_gate_by_slug(slug)
        self.analytics.record_event(
            gate.id, FunnelEventType.VIEW, session_id=session_id, attribution=attribution
        )
        return gate

    async def submit(
        self,
        gate_slug: str,
        email: str,
        consent: bool | Mapping[str, bool],
        *,
        display_name: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        session_id: str | None = None,
        attribution: Attribution | None = None,
    ) -> SubmitResult:
        """Capture a visitor's email and consent for a gate.

        Raises:
            ValidationError: Malformed email or unacceptable consent.
            GateNotFoundError: Unknown slug.
            GateInactiveError, GateExpiredError, MaxDownloadsReachedError:
                The gate does not accept submissions.
            DuplicateSubmissionError: The email already submitted to this gate.
        """
        email = normalize_email(email)
        gate = self._get_gate_by_slug(gate_slug)
        now = self.clock()
        ensure_submittable(gate, now)
        decision = self.policy.evaluate(consent)

        try:
            submission = self.submissions.create(
                gate_id=gate.id,
                email=email,
                display_name=display_name,
                consent=decision.accepted,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            metadata = {"gate_slug": gate.slug, "accepted_brands": decision.accepted}
            if decision.any_accepted:
                action = ConsentAction.SUBSCRIBE
                metadata.update(gate_title=gate.title, artist_name=gate.artist_name)
            else:
                action = ConsentAction.DECLINE
            self.ledger.record(
                ConsentEntry(
                    contact_id=email,
                    action=action,
                    source=ConsentSource.DOWNLOAD_GATE,
                    timestamp=now,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    metadata=metadata,
                ),
                commit=False,
            )
            self.session.commit()
        except GateError:
            self.session.rollback()
            raise

        logger.info(
            "Submission %s created for gate %s (consented brands: %s)",
            submission.id,
            gate.slug,
            ", ".join(decision.accepted_brands) or "none",
        )

        self.dispatcher.spawn(
            f"confirmation-email:{submission.id}",
            self._send_confirmation(email, display_name, gate.title, gate.artist_name),
        )
        self.analytics.record_event(
            gate.id,
            FunnelEventType.SUBMIT,
            session_id=session_id,
            attribution=attribution,
            submission_id=submission.id,
        )
        return SubmitResult(submission_id=submission.id, required_steps=gate.verification_steps)

    async def _send_confirmation(
        self, email: str, display_name: str | None, title: str, artist_name: str | None
    ) -> None:
        greeting = f"Hi {display_name}," if display_name else "Hi,"
        by_artist = f" by {artist_name}" if artist_name else ""
        body = (
            f"{greeting}\n\n"
            f"Thanks for signing up for {title}{by_artist}. "
            "Complete the remaining steps on the download page to unlock your file."
        )
        result = await self.email_sender.send(email, f"Your download: {title}", body)
        if not result.success:
            logger.warning("Confirmation email to %s was not sent: %s", email, result.error)

    async def begin_step_verification(
        self, submission_id: int, provider: str, action: GateStep | str
    ) -> BeginResult:
        """Start a third-party verification round-trip for one step.

        Returns a one-time handshake value and the provider redirect URL.
        """
        submission = self._get_submission(submission_id)
        try:
            step = GateStep(action)
        except ValueError as err:
            raise ValidationError(
                "Unknown verification step", details={"action": str(action)}
            ) from err
        if step is GateStep.EMAIL:
            raise ValidationError(
                "Email is verified at submission", details={"action": step.value}
            )

        gate = self._get_gate(submission.gate_id)
        if step not in gate.steps:
            raise ValidationError(
                "This gate does not require that step", details={"action": step.value}
            )
        if submission.is_step_verified(step):
            raise StepAlreadyVerifiedError(details={"action": step.value})

        verifier = self.providers.get(provider)
        if verifier is None:
            raise ValidationError("Unknown provider", details={"provider": provider})

        handshake_value = generate_handshake_value()
        code_verifier = generate_code_verifier()
        request = AuthorizationRequest(
            provider=provider,
            action=step,
            state=handshake_value,
            code_challenge=code_challenge_for(code_verifier),
            redirect_uri=self._callback_url(),
        )
        try:
            redirect_target = await asyncio.wait_for(
                verifier.initiate_authorization(request), timeout=self._collaborator_timeout
            )
        except Exception as exc:
            logger.warning("Provider %s failed to start authorization", provider, exc_info=True)
            raise ExternalServiceError(
                "Could not reach the provider, please retry", details={"provider": provider}
            ) from exc

        expires_at = self.clock() + timedelta(seconds=self.config.handshake_ttl_seconds)
        self.handshakes.create(
            value_hash=hash_token(handshake_value),
            submission_id=submission.id,
            gate_id=gate.id,
            provider=provider,
            action=step.value,
            code_verifier=code_verifier,
            expires_at=expires_at,
        )
        self.session.commit()
        logger.debug(
            "Handshake issued for submission %s step %s via %s", submission.id, step, provider
        )
        return BeginResult(
            handshake_value=handshake_value,
            redirect_target=redirect_target,
            expires_at=expires_at,
        )

    async def complete_step_verification(self, handshake_value: str, provider_proof: str) -> bool:
        """Finish a round-trip started by :meth:`begin_step_verification`.

        The handshake token is consumed and committed before the provider is
        asked about the proof, so a token can never be used twice even if the
        proof check fails or times out.

        Returns:
            True if the step is now verified, False if the provider rejected the proof.

        Raises:
            CsrfError: Unknown handshake value.
            HandshakeReplayError: The token was already consumed.
            HandshakeExpiredError: The token outlived its TTL.
            ExternalServiceError: The proof check failed or timed out.
        """
        token = self.handshakes.find_by_hash(hash_token(handshake_value))
        if token is None:
            raise CsrfError()

        claimed = self.handshakes.claim(token.id)
        self.session.commit()
        if not claimed:
            logger.warning("Replayed handshake for submission %s", token.submission_id)
            raise HandshakeReplayError()

        now = self.clock()
        if as_utc(now) >= as_utc(token.expires_at):
            raise HandshakeExpiredError()

        step = GateStep(token.action)
        verifier = self.providers.get(token.provider)
        if verifier is None:
            raise ExternalServiceError(
                "Verification failed, please retry", details={"provider": token.provider}
            )
        try:
            verified = await asyncio.wait_for(
                verifier.check_proof(provider_proof, step, token.code_verifier),
                timeout=self._collaborator_timeout,
            )
        except Exception as exc:
            logger.warning(
                "Proof check via %s failed for submission %s",
                token.provider,
                token.submission_id,
                exc_info=True,
            )
            raise ExternalServiceError(
                "Verification failed, please retry", details={"provider": token.provider}
            ) from exc

        if not verified:
            logger.info(
                "Provider %s rejected proof for submission %s step %s",
                token.provider,
                token.submission_id,
                step,
            )
            return False

        changed = self.submissions.mark_step_verified(token.submission_id, step, now)
        self.session.commit()
        if changed:
            logger.info("Step %s verified for submission %s", step, token.submission_id)
            self.analytics.record_event(
                token.gate_id,
                FunnelEventType.VERIFY_STEP,
                step=step,
                submission_id=token.submission_id,
            )
        return True

    async def issue_download_credential(self, submission_id: int) -> CredentialResult:
        """Issue a single-use download credential once every required step is verified.

        Issuing does not reserve a download; the gate counter only moves on
        redemption.
        """
        submission = self._get_submission(submission_id)
        if submission.download_completed:
            raise DownloadAlreadyCompletedError(details={"submission_id": submission_id})

        gate = self._get_gate(submission.gate_id)
        now = self.clock()
        ensure_submittable(gate, now)

        missing = submission.missing_steps(gate.steps)
        if missing:
            raise VerificationIncompleteError(
                details={"missing_steps": [step.value for step in missing]}
            )

        token = generate_credential_token()
        expires_at = now + timedelta(seconds=self.config.credential_ttl_seconds)
        self.credentials.create(
            token_hash=hash_token(token),
            submission_id=submission.id,
            gate_id=gate.id,
            expires_at=expires_at,
        )
        self.submissions.mark_credential_issued(submission.id, now)
        self.session.commit()
        logger.info("Download credential issued for submission %s", submission.id)
        return CredentialResult(token=token, expires_at=expires_at)

    async def redeem_credential(self, token: str) -> RedeemResult:
        """Consume a download credential and resolve the file location.

        Consuming the credential, marking the submission downloaded and
        bumping the gate counter happen in one transaction.

        Raises:
            InvalidCredentialError: Unknown token.
            CredentialAlreadyUsedError: The token was already redeemed.
            CredentialExpiredError: The token outlived its window.
            DownloadAlreadyCompletedError: Another credential of the same
                submission was already redeemed.
            MaxDownloadsReachedError: The gate's download ceiling was reached.
        """
        token_hash = hash_token(token)
        credential = self.credentials.find_by_hash(token_hash)
        if credential is None:
            raise InvalidCredentialError()

        now = self.clock()
        if not self.credentials.claim(credential.id, now):
            self.session.rollback()
            current = self.credentials.find_by_hash(token_hash)
            if current is not None and current.used:
                raise CredentialAlreadyUsedError()
            raise CredentialExpiredError()

        if not self.submissions.mark_download_completed(credential.submission_id, now):
            self.session.rollback()
            raise DownloadAlreadyCompletedError(
                details={"submission_id": credential.submission_id}
            )

        if not self.gates.increment_downloads(credential.gate_id):
            self.session.rollback()
            logger.info("Gate %s reached its download ceiling", credential.gate_id)
            raise MaxDownloadsReachedError()

        self.session.commit()
        gate = self._get_gate(credential.gate_id)
        logger.info(
            "Credential redeemed for submission %s (gate %s, %s downloads)",
            credential.submission_id,
            gate.slug,
            gate.downloads_issued,
        )

        self.analytics.record_event(
            gate.id, FunnelEventType.DOWNLOAD, submission_id=credential.submission_id
        )
        return RedeemResult(
            file_reference=gate.file_reference,
            download_url=self.file_resolver.resolve(gate.file_reference),
        )

    async def submission_status(self, submission_id: int) -> SubmissionStatus:
        """Return the current state machine position and per-step status."""
        submission = self._get_submission(submission_id)
        gate = self._get_gate(submission.gate_id)
        required = gate.steps
        return SubmissionStatus(
            submission_id=submission.id,
            state=submission.state(required),
            steps=submission.step_statuses(required),
        )


__all__ = [
    "BeginResult",
    "CredentialResult",
    "RedeemResult",
    "SubmissionStatus",
    "SubmitResult",
    "VerificationOrchestrator",
    "ensure_submittable",
    "normalize_email",
]
