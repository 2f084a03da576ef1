"""
ID Token verification and claim extraction.

This module handles:
- Verifying ID Token signatures and expiry with a configured public key
- Delegating verification to a remote verification endpoint
- Turning the verified payload into ``Claims`` for the claim validator

Key discovery and JWKS rotation are left to the deployment: the local
verifier takes a single PEM key, the remote one trusts its endpoint.
"""

import logging
from typing import Any, Dict, List, Protocol

import httpx
import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

from ..config import Settings
from ..errors import TokenVerificationError
from ..models import Claims


logger = logging.getLogger(__name__)


class ClaimsVerifier(Protocol):
    """Verifies an ID Token and returns its claims."""

    async def verify_and_extract(self, token: str) -> Claims:
        """
        Raises:
            TokenVerificationError: If the token cannot be trusted
        """
        ...


# =============================================================================
# Local verification (PyJWT)
# =============================================================================

class JwtClaimsVerifier:
    """Verify ID Tokens against a single configured key."""

    def __init__(self, public_key: str, algorithms: List[str], leeway: int = 10):
        self.public_key = public_key
        self.algorithms = algorithms
        self.leeway = leeway

    async def verify_and_extract(self, token: str) -> Claims:
        if not token:
            raise TokenVerificationError("No ID Token provided")

        try:
            payload = jwt.decode(
                token,
                self.public_key,
                algorithms=self.algorithms,
                leeway=self.leeway,
                options={
                    "verify_signature": True,
                    "verify_exp": True,
                    "verify_nbf": True,
                    # aud, iat and iss are checked by IdTokenValidator
                    "verify_aud": False,
                    "verify_iat": False,
                    "verify_iss": False,
                    "require": ["exp"],
                },
            )
        except ExpiredSignatureError as e:
            raise TokenVerificationError("ID Token has expired") from e
        except InvalidTokenError as e:
            raise TokenVerificationError(f"ID Token verification failed: {e}") from e

        return Claims.from_payload(payload)


# =============================================================================
# Remote verification
# =============================================================================

class HttpClaimsVerifier:
    """
    Verify ID Tokens through a verification service.

    The service receives ``{"token": ...}`` and answers
    ``{"valid": bool, "claims": {...}, "error": "..."}``.
    """

    def __init__(self, verify_url: str, client: httpx.AsyncClient, timeout: float = 10.0):
        self.verify_url = verify_url
        self.client = client
        self.timeout = timeout

    async def verify_and_extract(self, token: str) -> Claims:
        if not token:
            raise TokenVerificationError("No ID Token provided")

        try:
            response = await self.client.post(
                self.verify_url,
                json={"token": token},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.error(f"Verification service unavailable: {e}")
            raise TokenVerificationError(
                "Verification service unavailable", details={"http_error": str(e)}
            ) from e

        if response.status_code != 200:
            raise TokenVerificationError(
                f"Verification service error: {response.status_code}",
                details={"status_code": response.status_code},
            )

        try:
            result: Dict[str, Any] = response.json()
        except ValueError as e:
            raise TokenVerificationError("Verification service returned non-JSON") from e

        if not isinstance(result, dict) or not result.get("valid"):
            error = result.get("error") if isinstance(result, dict) else None
            raise TokenVerificationError(
                f"ID Token rejected: {error or 'invalid token'}",
                details={"token_error": error},
            )

        claims = result.get("claims")
        if not isinstance(claims, dict):
            raise TokenVerificationError("Verification service returned no claims")

        return Claims.from_payload(claims)


def build_claims_verifier(settings: Settings, client: httpx.AsyncClient) -> ClaimsVerifier:
    """
    Pick the verifier matching the configuration.

    Raises:
        ValueError: If neither a public key nor a verification URL is set
    """
    if settings.OIDC_ID_TOKEN_PUBLIC_KEY:
        return JwtClaimsVerifier(
            settings.OIDC_ID_TOKEN_PUBLIC_KEY,
            settings.id_token_algorithms_list,
        )
    if settings.OIDC_VERIFY_URL:
        return HttpClaimsVerifier(
            settings.OIDC_VERIFY_URL,
            client,
            timeout=settings.IDP_TIMEOUT_SECONDS,
        )
    raise ValueError("Configure OIDC_ID_TOKEN_PUBLIC_KEY or OIDC_VERIFY_URL")
