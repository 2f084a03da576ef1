"""
Shared fixtures for the OIDC gateway tests.

Provides test settings, an RSA key pair for minting signed ID Tokens, a
fake claims verifier and helpers for scripting IdP replies with
httpx.MockTransport.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional
from urllib.parse import parse_qs

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from oidc_gateway.auth.hashing import NonceHasher
from oidc_gateway.auth.idp import IdpGateway
from oidc_gateway.auth.validator import IdTokenValidator
from oidc_gateway.config import Settings
from oidc_gateway.errors import TokenVerificationError
from oidc_gateway.models import Claims
from oidc_gateway.session.store import InMemoryKeyValueStore, SessionStore


TEST_CLIENT_ID = "gateway-client"
TEST_ISSUER = "https://idp.example.com/realms/test"
TEST_HMAC_KEY = "test-hmac-key-0123456789abcdef0123"
TOKEN_ENDPOINT = "https://idp.example.com/token"


# ============================================================================
# Keys and tokens
# ============================================================================

def generate_test_keys():
    """Generate RSA key pair for testing"""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return private_pem.decode(), public_pem.decode()


TEST_PRIVATE_KEY, TEST_PUBLIC_KEY = generate_test_keys()


def create_id_token(
    nonce: Optional[str] = None,
    exp_delta_minutes: int = 60,
    private_key: str = TEST_PRIVATE_KEY,
    **overrides: Any,
) -> str:
    """
    Create an ID Token signed with the test private key.

    Keyword overrides replace payload claims; a value of None removes it.
    """
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "iss": TEST_ISSUER,
        "sub": "user-123",
        "aud": TEST_CLIENT_ID,
        "iat": int(now.timestamp()),
        "exp": now + timedelta(minutes=exp_delta_minutes),
    }
    if nonce is not None:
        payload["nonce"] = nonce
    for key, value in overrides.items():
        if value is None:
            payload.pop(key, None)
        else:
            payload[key] = value

    return jwt.encode(payload, private_key, algorithm="RS256")


def valid_claims(**overrides: str) -> Claims:
    values = {
        "aud": TEST_CLIENT_ID,
        "iat": "1700000000",
        "iss": TEST_ISSUER,
        "sub": "user-123",
        "nonce": "",
    }
    values.update(overrides)
    return Claims(**values)


class FakeVerifier:
    """
    Claims verifier returning canned claims per token.

    Tokens not registered are rejected, like an expired or forged token.
    """

    def __init__(self):
        self.claims: Dict[str, Claims] = {}
        self.calls = []

    def add(self, token: str, claims: Claims) -> None:
        self.claims[token] = claims

    async def verify_and_extract(self, token: str) -> Claims:
        self.calls.append(token)
        if token not in self.claims:
            raise TokenVerificationError("ID Token has expired")
        return self.claims[token]


# ============================================================================
# IdP helpers
# ============================================================================

def form_of(request: httpx.Request) -> Dict[str, str]:
    """Decode a form-encoded request body."""
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def json_reply(status_code: int, body: Any) -> httpx.Response:
    return httpx.Response(
        status_code,
        content=json.dumps(body).encode(),
        headers={"Content-Type": "application/json"},
    )


def mock_idp_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def settings():
    """Settings for tests (no .env, in-memory sessions, plain-http cookies)"""
    return Settings(
        _env_file=None,
        OIDC_AUTHZ_ENDPOINT="https://idp.example.com/authorize",
        OIDC_TOKEN_ENDPOINT=TOKEN_ENDPOINT,
        OIDC_CLIENT=TEST_CLIENT_ID,
        OIDC_CLIENT_SECRET="test-client-secret",
        OIDC_HMAC_KEY=TEST_HMAC_KEY,
        OIDC_REDIRECT_URI="http://testserver/_codexch",
        OIDC_ID_TOKEN_PUBLIC_KEY=TEST_PUBLIC_KEY,
        UPSTREAM_URL="http://backend:8000",
        COOKIE_SECURE=False,
    )


@pytest.fixture
def hasher():
    return NonceHasher(TEST_HMAC_KEY)


@pytest.fixture
def validator(hasher):
    return IdTokenValidator(TEST_CLIENT_ID, hasher)


@pytest.fixture
def kv():
    return InMemoryKeyValueStore()


@pytest.fixture
def store(kv):
    return SessionStore(kv, session_ttl_seconds=3600, refresh_ttl_seconds=28800)


@pytest.fixture
def verifier():
    return FakeVerifier()


@pytest.fixture
def idp_factory(settings):
    """Build an IdpGateway whose token endpoint is answered by ``handler``."""
    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> IdpGateway:
        return IdpGateway(settings, mock_idp_client(handler))
    return factory
