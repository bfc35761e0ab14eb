"""External collaborators used by the verification engine.

The orchestrator only talks to these through small protocols so tests can
swap in fakes:

- ``ProviderVerifier`` builds third-party authorization redirects and checks
  the proof a provider hands back after the visitor performed an action
- ``EmailSender`` delivers the confirmation email after a submission
- ``FileResolver`` turns a gate's file reference into a downloadable URL

The shipped HTTP implementations use a shared ``httpx.AsyncClient`` created
in the application lifespan.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

import httpx

from backstage_gate.core.settings import Settings
from backstage_gate.models.gate import GateStep

logger = logging.getLogger(__name__)

HTTP_OK = 200


class CollaboratorError(RuntimeError):
    """Raised when an external collaborator cannot complete a call."""


@dataclass(frozen=True)
class AuthorizationRequest:
    """Everything a provider needs to send the visitor back to the callback."""

    provider: str
    action: GateStep
    state: str
    code_challenge: str
    redirect_uri: str


@dataclass(frozen=True)
class SendResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


@runtime_checkable
class ProviderVerifier(Protocol):
    async def initiate_authorization(self, request: AuthorizationRequest) -> str: ...

    async def check_proof(
        self, access_grant: str, action: GateStep, code_verifier: str | None
    ) -> bool: ...


@runtime_checkable
class EmailSender(Protocol):
    async def send(self, to: str, subject: str, body: str) -> SendResult: ...


@runtime_checkable
class FileResolver(Protocol):
    def resolve(self, file_reference: str) -> str: ...


class HttpProviderVerifier:
    """Provider verifier backed by configured authorize URLs and a proof-check service.

    The redirect is built locally from the provider's authorize URL; proof
    checks are delegated to ``verify_url`` which answers ``{"verified": bool}``.
    """

    def __init__(
        self,
        provider: str,
        authorize_url: str,
        verify_url: str | None,
        client: httpx.AsyncClient,
        timeout: float = 10.0,
    ) -> None:
        self.provider = provider
        self.authorize_url = authorize_url
        self.verify_url = verify_url
        self.client = client
        self.timeout = timeout

    async def initiate_authorization(self, request: AuthorizationRequest) -> str:
        url = httpx.URL(self.authorize_url).copy_merge_params(
            {
                "response_type": "code",
                "redirect_uri": request.redirect_uri,
                "state": request.state,
                "scope": request.action.value,
                "code_challenge": request.code_challenge,
                "code_challenge_method": "S256",
            }
        )
        return str(url)

    async def check_proof(
        self, access_grant: str, action: GateStep, code_verifier: str | None
    ) -> bool:
        if not self.verify_url:
            raise CollaboratorError(f"No verification service configured for {self.provider}")
        payload = {
            "provider": self.provider,
            "action": action.value,
            "access_grant": access_grant,
            "code_verifier": code_verifier,
        }
        try:
            response = await self.client.post(self.verify_url, json=payload, timeout=self.timeout)
        except httpx.HTTPError as exc:
            raise CollaboratorError(f"{self.provider} proof check failed: {exc}") from exc

        if response.status_code != HTTP_OK:
            raise CollaboratorError(
                f"{self.provider} proof check returned HTTP {response.status_code}"
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise CollaboratorError(f"{self.provider} proof check returned invalid JSON") from exc
        return bool(data.get("verified", False))


class HttpEmailSender:
    """Send mail by posting to an HTTP relay."""

    def __init__(
        self, relay_url: str, sender: str, client: httpx.AsyncClient, timeout: float = 10.0
    ) -> None:
        self.relay_url = relay_url
        self.sender = sender
        self.client = client
        self.timeout = timeout

    async def send(self, to: str, subject: str, body: str) -> SendResult:
        payload = {"from": self.sender, "to": to, "subject": subject, "text": body}
        try:
            response = await self.client.post(self.relay_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Mail relay rejected message: %s", exc)
            return SendResult(success=False, error=str(exc))

        message_id = None
        if response.headers.get("content-type", "").startswith("application/json"):
            message_id = response.json().get("id")
        return SendResult(success=True, message_id=message_id)


class LoggingEmailSender:
    """Email sender used when no relay is configured; writes the message to the log."""

    async def send(self, to: str, subject: str, body: str) -> SendResult:
        message_id = uuid.uuid4().hex
        logger.info("Email %s to %s: %s", message_id, to, subject)
        logger.debug("Email %s body:\n%s", message_id, body)
        return SendResult(success=True, message_id=message_id)


class StaticFileResolver:
    """Resolve file references against a base URL; absolute URLs pass through."""

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url.rstrip("/")

    def resolve(self, file_reference: str) -> str:
        if file_reference.startswith(("http://", "https://")):
            return file_reference
        return f"{self.base_url}/{file_reference.lstrip('/')}"


class ProviderRegistry:
    """Map provider names to their verifiers."""

    def __init__(self, verifiers: Mapping[str, ProviderVerifier] | None = None) -> None:
        self._verifiers: dict[str, ProviderVerifier] = dict(verifiers or {})

    def register(self, name: str, verifier: ProviderVerifier) -> None:
        self._verifiers[name] = verifier

    def get(self, name: str) -> ProviderVerifier | None:
        return self._verifiers.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._verifiers

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._verifiers))


@dataclass
class Collaborators:
    """Bundle of collaborators built once per application."""

    providers: ProviderRegistry
    email_sender: EmailSender
    file_resolver: FileResolver
    http_client: httpx.AsyncClient | None = field(default=None, repr=False)

    async def aclose(self) -> None:
        if self.http_client is not None:
            await self.http_client.aclose()


def build_collaborators(
    config: Settings, client: httpx.AsyncClient | None = None
) -> Collaborators:
    """Build the default HTTP-backed collaborators from settings."""
    client = client or httpx.AsyncClient(timeout=config.collaborator_timeout_seconds)
    providers = ProviderRegistry(
        {
            name: HttpProviderVerifier(
                provider=name,
                authorize_url=url,
                verify_url=config.provider_verify_url,
                client=client,
                timeout=config.collaborator_timeout_seconds,
            )
            for name, url in config.provider_authorize_urls.items()
        }
    )

    email_sender: EmailSender
    if config.mail_relay_url:
        email_sender = HttpEmailSender(
            config.mail_relay_url,
            config.mail_from,
            client,
            timeout=config.collaborator_timeout_seconds,
        )
    else:
        logger.info("MAIL_RELAY_URL not set; confirmation emails will only be logged")
        email_sender = LoggingEmailSender()

    return Collaborators(
        providers=providers,
        email_sender=email_sender,
        file_resolver=StaticFileResolver(config.file_base_url),
        http_client=client,
    )


__all__ = [
    "AuthorizationRequest",
    "CollaboratorError",
    "Collaborators",
    "EmailSender",
    "FileResolver",
    "HttpEmailSender",
    "HttpProviderVerifier",
    "LoggingEmailSender",
    "ProviderRegistry",
    "ProviderVerifier",
    "SendResult",
    "StaticFileResolver",
    "build_collaborators",
]
