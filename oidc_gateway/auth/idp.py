"""
IdP token endpoint client.

Exchanges authorization codes and refresh tokens for token sets. Every
failure is turned into one of the exceptions in ``oidc_gateway.errors`` so
callers only branch on exception types:

- IdpTimeoutError: deadline exceeded (or the IdP hop answered 504)
- IdpTransportError: IdP unreachable
- IdpProtocolError: non-200 reply, or a 200 reply carrying ``error``
- MalformedResponseError: 200 reply that is not a usable token set
"""

import json
import logging
from typing import Optional, Tuple

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..errors import (
    IdpProtocolError,
    IdpTimeoutError,
    IdpTransportError,
    MalformedResponseError,
)
from ..models import TokenSet


logger = logging.getLogger(__name__)


# =============================================================================
# Response parsing
# =============================================================================

def parse_error_body(body: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Extract ``error`` / ``error_description`` from an error reply.

    Returns:
        (error, error_description); error is None when the body is not a
        JSON object with an ``error`` field
    """
    try:
        data = json.loads(body)
    except ValueError:
        return None, None

    if not isinstance(data, dict) or not data.get("error"):
        return None, None

    description = data.get("error_description")
    return str(data["error"]), str(description) if description is not None else None


def parse_token_set(body: str, status_code: int = 200) -> TokenSet:
    """
    Parse a successful token endpoint body.

    Args:
        body: Raw response body
        status_code: Transport status of the reply (for error details)

    Returns:
        TokenSet with a non-empty id_token

    Raises:
        IdpProtocolError: If the body carries an ``error`` field
        MalformedResponseError: If the body is not JSON, not an object, or
            has no id_token
    """
    try:
        data = json.loads(body)
    except ValueError:
        raise MalformedResponseError(
            "token response is not JSON", status_code=status_code, body=body
        )

    if not isinstance(data, dict):
        raise MalformedResponseError(
            "token response is not a JSON object", status_code=status_code, body=body
        )

    try:
        token_set = TokenSet.model_validate(data)
    except ValidationError as e:
        raise MalformedResponseError(
            f"token response has unexpected field types: {e.error_count()} error(s)",
            status_code=status_code,
            body=body,
        )

    if token_set.error:
        raise IdpProtocolError(
            f"{token_set.error} {token_set.error_description}",
            status_code=status_code,
            body=body,
            error=token_set.error,
            error_description=token_set.error_description,
        )

    if not token_set.id_token:
        raise MalformedResponseError(
            "token response did not include id_token",
            status_code=status_code,
            body=body,
        )

    return token_set


# =============================================================================
# Gateway
# =============================================================================

class IdpGateway:
    """Client for the IdP token endpoint."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient):
        self.settings = settings
        self.client = client
        self.timeout = httpx.Timeout(settings.IDP_TIMEOUT_SECONDS)

    async def exchange_code(self, code: str) -> TokenSet:
        """
        Exchange an authorization code for a token set.

        Args:
            code: Authorization code received on the callback

        Returns:
            TokenSet containing at least an id_token
        """
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self.settings.OIDC_CLIENT,
            "redirect_uri": self.settings.OIDC_REDIRECT_URI,
        }
        return await self._request_tokens(payload)

    async def exchange_refresh_token(self, refresh_token: str) -> TokenSet:
        """
        Exchange a refresh token for a new token set.

        Args:
            refresh_token: Refresh token stored for the session

        Returns:
            TokenSet containing at least an id_token
        """
        payload = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.settings.OIDC_CLIENT,
        }
        return await self._request_tokens(payload)

    async def _request_tokens(self, payload: dict) -> TokenSet:
        if self.settings.OIDC_CLIENT_SECRET:
            payload["client_secret"] = self.settings.OIDC_CLIENT_SECRET

        grant_type = payload["grant_type"]

        try:
            response = await self.client.post(
                self.settings.OIDC_TOKEN_ENDPOINT,
                data=payload,
                headers={
                    "Content-Type": "application/x-www-form-urlencoded",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise IdpTimeoutError(
                "timeout waiting for IdP", details={"grant_type": grant_type}
            ) from e
        except httpx.TransportError as e:
            raise IdpTransportError(
                f"unable to reach IdP: {e}", details={"grant_type": grant_type}
            ) from e

        logger.debug(
            "IdP token endpoint replied",
            extra={"grant_type": grant_type, "status_code": response.status_code},
        )

        if response.status_code == 504:
            raise IdpTimeoutError(
                "IdP gateway timeout", details={"grant_type": grant_type}
            )

        if response.status_code != 200:
            error, error_description = parse_error_body(response.text)
            raise IdpProtocolError(
                f"IdP returned HTTP {response.status_code}",
                status_code=response.status_code,
                body=response.text,
                error=error,
                error_description=error_description,
            )

        return parse_token_set(response.text, status_code=response.status_code)
