from __future__ import annotations

import json
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from backstage_gate.core.settings import Settings
from backstage_gate.models import GateStep
from backstage_gate.services.collaborators import (
    AuthorizationRequest,
    CollaboratorError,
    HttpEmailSender,
    HttpProviderVerifier,
    LoggingEmailSender,
    ProviderRegistry,
    ProviderVerifier,
    StaticFileResolver,
    build_collaborators,
)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _verifier(client: httpx.AsyncClient) -> HttpProviderVerifier:
    return HttpProviderVerifier("soundcloud", "https://auth.test", "https://verify.test", client)


@pytest.mark.asyncio
async def test_authorize_url_carries_state_and_pkce():
    async with _client(lambda request: httpx.Response(500)) as client:
        verifier = HttpProviderVerifier(
            "soundcloud", "https://secure.soundcloud.com/authorize?client_id=abc", None, client
        )
        url = await verifier.initiate_authorization(
            AuthorizationRequest(
                provider="soundcloud",
                action=GateStep.SOCIAL_REPOST,
                state="state-value",
                code_challenge="challenge",
                redirect_uri="https://gate.test/api/v1/verifications/callback",
            )
        )

    parts = urlsplit(url)
    query = parse_qs(parts.query)
    assert parts.netloc == "secure.soundcloud.com"
    assert query["client_id"] == ["abc"]
    assert query["state"] == ["state-value"]
    assert query["code_challenge"] == ["challenge"]
    assert query["code_challenge_method"] == ["S256"]
    assert query["scope"] == ["social_repost"]
    assert query["redirect_uri"] == ["https://gate.test/api/v1/verifications/callback"]


@pytest.mark.asyncio
@pytest.mark.parametrize("verified", [True, False])
async def test_check_proof_posts_to_verification_service(verified):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"verified": verified})

    async with _client(handler) as client:
        verifier = HttpProviderVerifier(
            "soundcloud", "https://auth.test", "https://verify.test/check", client
        )
        result = await verifier.check_proof("grant-1", GateStep.SOCIAL_FOLLOW, "verifier-1")

    assert result is verified
    assert seen == [
        {
            "provider": "soundcloud",
            "action": "social_follow",
            "access_grant": "grant-1",
            "code_verifier": "verifier-1",
        }
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "handler",
    [
        lambda request: httpx.Response(503),
        lambda request: httpx.Response(200, content=b"not json"),
    ],
)
async def test_check_proof_failures_raise(handler):
    async with _client(handler) as client:
        verifier = _verifier(client)
        with pytest.raises(CollaboratorError):
            await verifier.check_proof("grant", GateStep.SOCIAL_REPOST, None)


@pytest.mark.asyncio
async def test_check_proof_transport_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    async with _client(handler) as client:
        verifier = _verifier(client)
        with pytest.raises(CollaboratorError):
            await verifier.check_proof("grant", GateStep.SOCIAL_REPOST, None)


@pytest.mark.asyncio
async def test_check_proof_without_service_raises():
    async with _client(lambda request: httpx.Response(200)) as client:
        verifier = HttpProviderVerifier("soundcloud", "https://auth.test", None, client)
        with pytest.raises(CollaboratorError):
            await verifier.check_proof("grant", GateStep.SOCIAL_REPOST, None)


@pytest.mark.asyncio
async def test_http_email_sender():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(202, json={"id": "relay-1"})

    async with _client(handler) as client:
        sender = HttpEmailSender("https://mail.test/send", "no-reply@gate.test", client)
        result = await sender.send("fan@example.com", "Hello", "Body")

    assert result.success is True
    assert result.message_id == "relay-1"
    assert seen[0]["to"] == "fan@example.com"
    assert seen[0]["from"] == "no-reply@gate.test"


@pytest.mark.asyncio
async def test_http_email_sender_reports_failure():
    async with _client(lambda request: httpx.Response(500)) as client:
        sender = HttpEmailSender("https://mail.test/send", "no-reply@gate.test", client)
        result = await sender.send("fan@example.com", "Hello", "Body")

    assert result.success is False
    assert result.error


@pytest.mark.asyncio
async def test_logging_email_sender(caplog):
    with caplog.at_level("INFO", logger="backstage_gate.services.collaborators"):
        result = await LoggingEmailSender().send("fan@example.com", "Hello", "Body")
    assert result.success is True
    assert "fan@example.com" in caplog.text


@pytest.mark.parametrize(
    ("reference", "expected"),
    [
        ("releases/track.wav", "https://files.test/releases/track.wav"),
        ("/releases/track.wav", "https://files.test/releases/track.wav"),
        ("https://cdn.test/track.wav", "https://cdn.test/track.wav"),
    ],
)
def test_static_file_resolver(reference, expected):
    assert StaticFileResolver("https://files.test/").resolve(reference) == expected


def test_provider_registry():
    registry = ProviderRegistry()
    verifier = HttpProviderVerifier("spotify", "https://auth.test", None, httpx.AsyncClient())
    registry.register("spotify", verifier)

    assert "spotify" in registry
    assert registry.get("spotify") is verifier
    assert registry.get("tidal") is None
    assert isinstance(verifier, ProviderVerifier)


@pytest.mark.asyncio
async def test_build_collaborators_from_settings():
    config = Settings(
        PROVIDER_AUTHORIZE_URLS={"soundcloud": "https://auth.test"},
        FILE_BASE_URL="https://files.test",
        MAIL_RELAY_URL=None,
    )
    collaborators = build_collaborators(config)
    try:
        assert list(collaborators.providers) == ["soundcloud"]
        assert isinstance(collaborators.email_sender, LoggingEmailSender)
        assert collaborators.file_resolver.resolve("a.wav") == "https://files.test/a.wav"
    finally:
        await collaborators.aclose()

    relay = build_collaborators(Settings(MAIL_RELAY_URL="https://mail.test"))
    try:
        assert isinstance(relay.email_sender, HttpEmailSender)
    finally:
        await relay.aclose()
