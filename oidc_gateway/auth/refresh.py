"""
Transparent session refresh.

Runs when a request arrives with an expired session and a stored refresh
token. On success the session's ID Token is replaced and the original
request continues server-side. On any failure the refresh token is
tombstoned and the client is redirected to the same URI; the replayed
request finds no usable session and starts a fresh login.
"""

import logging

from .idp import IdpGateway
from .validator import IdTokenValidator
from .verifier import ClaimsVerifier
from ..errors import (
    IdpProtocolError,
    IdpTimeoutError,
    IdpTransportError,
    MalformedResponseError,
    OIDCError,
    TokenValidationError,
    TokenVerificationError,
)
from ..models import FlowOutcome
from ..session.store import SessionStore


logger = logging.getLogger(__name__)


def describe_refresh_failure(exc: OIDCError) -> str:
    """Log line for a failed refresh exchange."""
    message = "OIDC refresh failure"

    if isinstance(exc, IdpTimeoutError):
        return message + ", timeout waiting for IdP"
    if isinstance(exc, IdpTransportError):
        return f"{message}, {exc.message}"
    if isinstance(exc, IdpProtocolError):
        if exc.status_code in (200, 400):
            if exc.is_structured:
                return f"{message}: {exc.error} {exc.error_description}"
            return f"{message}: {exc.body}"
        return f"{message} {exc.status_code}"
    if isinstance(exc, MalformedResponseError):
        return f"{message}: refresh {exc.message}"
    return f"{message}: {exc.message}"


class TokenRefresher:
    """Replaces an expired session's ID Token using its refresh token."""

    def __init__(
        self,
        idp: IdpGateway,
        verifier: ClaimsVerifier,
        validator: IdTokenValidator,
        store: SessionStore,
    ):
        self.idp = idp
        self.verifier = verifier
        self.validator = validator
        self.store = store

    async def refresh(
        self,
        session_id: str,
        stored_refresh_token: str,
        request_uri: str,
    ) -> FlowOutcome:
        """
        Refresh a session.

        Args:
            session_id: Opaque session token presented by the client
            stored_refresh_token: Refresh token currently stored for it
            request_uri: URI of the request that found the session expired

        Returns:
            RESUME with the new ID Token, or a 302 back to ``request_uri``
        """
        try:
            token_set = await self.idp.exchange_refresh_token(stored_refresh_token)
        except (IdpTransportError, IdpProtocolError, MalformedResponseError) as e:
            return await self._abandon(session_id, request_uri, describe_refresh_failure(e))

        try:
            claims = await self.verifier.verify_and_extract(token_set.id_token)
        except TokenVerificationError as e:
            return await self._abandon(
                session_id, request_uri, f"OIDC refreshed ID Token rejected: {e.message}"
            )

        try:
            self.validator.require_valid(claims, nonce_expected=False)
        except TokenValidationError:
            return await self._abandon(
                session_id, request_uri, "OIDC refreshed ID Token failed validation"
            )

        logger.info("OIDC refresh success, updating id_token", extra={"session_id": session_id})
        await self.store.save_id_token(session_id, token_set.id_token)

        if token_set.refresh_token and token_set.refresh_token != stored_refresh_token:
            logger.info(
                "OIDC replacing previous refresh token with new value",
                extra={"session_id": session_id},
            )
            await self.store.save_refresh_token(session_id, token_set.refresh_token)

        return FlowOutcome.resume(session_id, token_set.id_token)

    async def _abandon(self, session_id: str, request_uri: str, message: str) -> FlowOutcome:
        logger.error(message, extra={"session_id": session_id})
        await self.store.clear_refresh_token(session_id)
        return FlowOutcome.redirect(request_uri)
