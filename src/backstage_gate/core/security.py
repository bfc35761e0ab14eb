"""Token generation, hashing and owner authentication helpers."""
from __future__ import annotations

import base64
import hashlib
import secrets
from datetime import UTC, datetime, timedelta

from jose import jwt

from backstage_gate.core.settings import settings

CREDENTIAL_TOKEN_BYTES = 32
HANDSHAKE_TOKEN_BYTES = 32


def generate_credential_token() -> str:
    """Return a hex-encoded download token (64 characters)."""
    return secrets.token_hex(CREDENTIAL_TOKEN_BYTES)


def generate_handshake_value() -> str:
    """Return a URL-safe handshake value suitable for an OAuth ``state`` parameter."""
    return secrets.token_urlsafe(HANDSHAKE_TOKEN_BYTES)


def generate_code_verifier() -> str:
    """Return a PKCE code verifier (43+ URL-safe characters)."""
    return secrets.token_urlsafe(48)


def code_challenge_for(verifier: str) -> str:
    """Return the S256 PKCE challenge for ``verifier``."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode().rstrip("=")


def hash_token(token: str) -> str:
    """Return a SHA-256 hash of the provided token.

    Raw token values are handed to the visitor once and only their hash is
    persisted, so a database leak does not expose live credentials.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_access_token(owner_id: int, extra_claims: dict[str, str] | None = None) -> str:
    """Create a JWT access token for a gate owner."""
    to_encode: dict[str, object] = {"sub": str(owner_id)}
    if extra_claims:
        to_encode.update(extra_claims)
    to_encode["exp"] = datetime.now(UTC) + timedelta(minutes=settings.access_token_expire_minutes)
    encoded_jwt: str = jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return encoded_jwt
